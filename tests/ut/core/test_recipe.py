"""配方加载与校验测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from recipkg.core.exceptions import RecipeError
from recipkg.core.recipe import RecipeBook, build_recipe, load_recipe, parse_assignments

HELLO = """\
# GNU hello
NAME=hello
VERSION=2.12
SOURCE=https://ftp.gnu.org/gnu/hello/hello-2.12.tar.gz
DEPENDS="libfoo libbar libfoo"
export BUILD="./configure --prefix=/usr && make"
INSTALL='make DESTDIR=$PKG install'
"""


class TestParseAssignments:
    def test_quoted_values_and_export(self) -> None:
        fields = parse_assignments(HELLO)
        assert fields["NAME"] == "hello"
        assert fields["BUILD"] == "./configure --prefix=/usr && make"
        assert fields["INSTALL"] == "make DESTDIR=$PKG install"
        assert fields["DEPENDS"] == "libfoo libbar libfoo"

    def test_command_substitution_kept_literal(self) -> None:
        fields = parse_assignments('VERSION="$(date)"')
        assert fields["VERSION"] == "$(date)"

    def test_multiline_value(self) -> None:
        fields = parse_assignments('BUILD="make\nmake check"\n')
        assert fields["BUILD"] == "make\nmake check"

    def test_hash_inside_word_is_literal(self) -> None:
        fields = parse_assignments(
            "SOURCE=https://h/x.tar.gz#sha=1\n"
            "VERSION=1.0#rc  # 候选版本\n"
            "NAME='a # b'\n"
            "# don't parse this\n"
        )
        assert fields == {
            "SOURCE": "https://h/x.tar.gz#sha=1",
            "VERSION": "1.0#rc",
            "NAME": "a # b",
        }

    def test_statement_rejected(self) -> None:
        with pytest.raises(RecipeError, match="不支持的语句"):
            parse_assignments("NAME=x\nrm -rf /\n")

    def test_unbalanced_quote(self) -> None:
        with pytest.raises(RecipeError, match="引号不匹配"):
            parse_assignments('BUILD="make')


class TestBuildRecipe:
    def _fields(self, **overrides: str) -> dict[str, str]:
        fields = {
            "NAME": "hello", "VERSION": "1.0", "SOURCE": "hello-1.0.tar.gz",
            "BUILD": "make", "INSTALL": "make install",
        }
        fields.update(overrides)
        return fields

    def test_defaults(self) -> None:
        r = build_recipe(self._fields(), "t")
        assert r.package_dir == "hello-1.0"
        assert r.depends == [] and r.patches == [] and r.extra_sources == []
        assert r.key == "hello-1.0"

    def test_explicit_pkgdir(self) -> None:
        r = build_recipe(self._fields(PKGDIR="hello-src"), "t")
        assert r.package_dir == "hello-src"

    def test_missing_required(self) -> None:
        fields = self._fields()
        del fields["SOURCE"]
        fields["BUILD"] = "  "
        with pytest.raises(RecipeError, match="缺少必填字段 SOURCE, BUILD"):
            build_recipe(fields, "t")

    def test_depends_deduplicated_in_order(self) -> None:
        r = build_recipe(self._fields(DEPENDS="b a b c a"), "t")
        assert r.depends == ["b", "a", "c"]

    @pytest.mark.parametrize("name", ["hel lo", "a/b"])
    def test_invalid_name(self, name: str) -> None:
        with pytest.raises(RecipeError, match="NAME"):
            build_recipe(self._fields(NAME=name), "t")

    def test_self_dependency(self) -> None:
        with pytest.raises(RecipeError, match="不能依赖自身"):
            build_recipe(self._fields(DEPENDS="libfoo hello"), "t")


class TestLoadRecipe:
    def test_shell_style(self, tmp_path: Path) -> None:
        p = tmp_path / "hello.recipe"
        p.write_text(HELLO, encoding="utf-8")
        r = load_recipe(p)
        assert r.name == "hello" and r.version == "2.12"
        assert r.depends == ["libfoo", "libbar"]
        assert r.path == p.resolve()

    def test_yaml_style(self, tmp_path: Path) -> None:
        p = tmp_path / "app.yml"
        p.write_text(
            "name: app\n"
            "version: 3\n"
            "source: app-3.tar.gz\n"
            "depends: [libA, libB]\n"
            "build: make\n"
            "install: |\n"
            "  make DESTDIR=$PKG install\n",
            encoding="utf-8",
        )
        r = load_recipe(p)
        assert r.version == "3"
        assert r.depends == ["libA", "libB"]
        assert r.install_command.strip() == "make DESTDIR=$PKG install"

    def test_yaml_invalid_field_type(self, tmp_path: Path) -> None:
        p = tmp_path / "bad.yaml"
        p.write_text("name: {a: 1}\n", encoding="utf-8")
        with pytest.raises(RecipeError, match="类型无效"):
            load_recipe(p)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(RecipeError, match="配方不存在"):
            load_recipe(tmp_path / "nope.recipe")


class TestRecipeBook:
    def test_find_prefers_recipe_suffix(self, tmp_path: Path) -> None:
        (tmp_path / "a.yml").write_text("", encoding="utf-8")
        (tmp_path / "a.recipe").write_text("", encoding="utf-8")
        book = RecipeBook(tmp_path)
        assert book.find("a") == tmp_path / "a.recipe"
        assert book.find("b") is None

    def test_load_by_name_and_path(self, tmp_path: Path) -> None:
        p = tmp_path / "hello.recipe"
        p.write_text(HELLO, encoding="utf-8")
        book = RecipeBook(tmp_path)
        assert book.load("hello").name == "hello"
        assert book.load(str(p)).name == "hello"

    def test_load_unknown(self, tmp_path: Path) -> None:
        with pytest.raises(RecipeError, match="配方不存在: ghost"):
            RecipeBook(tmp_path).load("ghost")
