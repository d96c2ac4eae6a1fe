"""配方加载与校验

配方是纯数据：若干命名字段 + 两段不透明的命令文本（BUILD / INSTALL）。
加载只做字段提取，绝不执行配方内容。

支持两种写法:
  - *.recipe: shell 赋值风格，KEY=value / KEY="带空格的值"，可选 export 前缀，# 注释
  - *.yml / *.yaml: 同名键的映射，键名大小写均可，列表字段可写 YAML 列表或空格分隔字符串

示例 (hello.recipe):
    NAME=hello
    VERSION=2.12
    SOURCE=https://ftp.gnu.org/gnu/hello/hello-2.12.tar.gz
    DEPENDS="libfoo"
    BUILD="./configure --prefix=/usr && make"
    INSTALL="make DESTDIR=$PKG install"
"""

from __future__ import annotations

import logging
import re
import shlex
from pathlib import Path
from typing import Any

import yaml

from recipkg.core.exceptions import RecipeError
from recipkg.core.models import Recipe
from recipkg.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

RECIPE_SUFFIXES = (".recipe", ".yml", ".yaml")

# 配方字段 -> Recipe 属性
FIELD_MAP = {
    "NAME": "name",
    "VERSION": "version",
    "PKGDIR": "package_dir",
    "SOURCE": "primary_source",
    "EXTRA_SOURCES": "extra_sources",
    "PATCHES": "patches",
    "BUILD": "build_command",
    "INSTALL": "install_command",
    "DEPENDS": "depends",
}

REQUIRED_FIELDS = ("NAME", "VERSION", "SOURCE", "BUILD", "INSTALL")
LIST_FIELDS = ("EXTRA_SOURCES", "PATCHES", "DEPENDS")

_ASSIGN_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)=(.*)$", re.DOTALL)


def _strip_comments(text: str) -> str:
    """去掉注释：# 只在词首且不在引号内时开始注释，直到行尾"""
    out: list[str] = []
    quote = ""
    prev = "\n"
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "\\" and quote != "'":
            out.append(text[i:i + 2])
            prev = "\\"
            i += 2
            continue
        if quote:
            if ch == quote:
                quote = ""
        elif ch in "'\"":
            quote = ch
        elif ch == "#" and prev.isspace():
            end = text.find("\n", i)
            i = len(text) if end < 0 else end
            continue
        out.append(ch)
        prev = ch
        i += 1
    return "".join(out)


def parse_assignments(text: str, origin: str = "<recipe>") -> dict[str, str]:
    """解析 shell 赋值风格的配方文本，返回 {KEY: value}"""
    lexer = shlex.shlex(_strip_comments(text), posix=True)
    lexer.whitespace_split = True
    lexer.commenters = ""
    try:
        tokens = list(lexer)
    except ValueError as e:
        raise RecipeError(f"{origin}: 引号不匹配 ({e})") from e

    fields: dict[str, str] = {}
    for tok in tokens:
        if tok == "export":
            continue
        m = _ASSIGN_RE.match(tok)
        if m is None:
            raise RecipeError(
                f"{origin}: 不支持的语句 '{tok[:40]}'，配方只允许 KEY=value 赋值"
            )
        fields[m.group(1)] = m.group(2)
    return fields


def _normalize_yaml(data: dict[str, Any], origin: str) -> dict[str, str]:
    fields: dict[str, str] = {}
    for k, v in data.items():
        key = str(k).upper()
        if v is None:
            continue
        if isinstance(v, list):
            fields[key] = " ".join(str(x) for x in v)
        elif isinstance(v, (str, int, float)):
            fields[key] = str(v)
        else:
            raise RecipeError(f"{origin}: 字段 {key} 类型无效 ({type(v).__name__})")
    return fields


def _dedupe(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def build_recipe(fields: dict[str, str], origin: str, path: Path | None = None) -> Recipe:
    """校验字段并构造 Recipe"""
    missing = [k for k in REQUIRED_FIELDS if not fields.get(k, "").strip()]
    if missing:
        raise RecipeError(f"{origin}: 缺少必填字段 {', '.join(missing)}")

    kwargs: dict[str, Any] = {}
    for key, attr in FIELD_MAP.items():
        value = fields.get(key, "")
        if key in LIST_FIELDS:
            kwargs[attr] = _dedupe(value.split())
        elif key in ("BUILD", "INSTALL"):
            kwargs[attr] = value
        else:
            kwargs[attr] = value.strip()

    name, version = kwargs["name"], kwargs["version"]
    if any(c.isspace() for c in name) or "/" in name:
        raise RecipeError(f"{origin}: NAME 不能包含空白或 '/': {name!r}")
    if any(c.isspace() for c in version):
        raise RecipeError(f"{origin}: VERSION 不能包含空白: {version!r}")
    if name in kwargs["depends"]:
        raise RecipeError(f"{origin}: 包 '{name}' 不能依赖自身")

    return Recipe(path=path, **kwargs)


def load_recipe(path: str | Path) -> Recipe:
    """从文件加载配方，按后缀选择解析方式"""
    p = Path(path)
    if not p.is_file():
        raise RecipeError(f"配方不存在: {p}")

    if p.suffix in (".yml", ".yaml"):
        try:
            data = load_yaml(p)
        except yaml.YAMLError as e:
            raise RecipeError(f"{p}: YAML 格式错误 ({e})") from e
        fields = _normalize_yaml(data, str(p))
    else:
        fields = parse_assignments(p.read_text(encoding="utf-8"), str(p))

    recipe = build_recipe(fields, str(p), path=p.resolve())
    logger.debug("配方已加载: %s (%s)", recipe.key, p)
    return recipe


class RecipeBook:
    """配方目录：按包名查找配方文件"""

    def __init__(self, recipes_dir: Path) -> None:
        self.recipes_dir = recipes_dir

    def find(self, name: str) -> Path | None:
        """按 <name>.recipe / <name>.yml / <name>.yaml 顺序查找，先命中者优先"""
        for suffix in RECIPE_SUFFIXES:
            candidate = self.recipes_dir / f"{name}{suffix}"
            if candidate.is_file():
                return candidate
        return None

    def load(self, ref: str) -> Recipe:
        """加载配方引用：文件路径或配方目录中的包名"""
        p = Path(ref)
        if p.is_file():
            return load_recipe(p)
        found = self.find(ref)
        if found is None:
            raise RecipeError(f"配方不存在: {ref} (搜索目录: {self.recipes_dir})")
        return load_recipe(found)
