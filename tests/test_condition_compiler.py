"""
Tests for the condition compiler
"""
import pytest

from star_tracker.services.condition_compiler import (
    REPO_COLUMNS,
    ConditionCompiler,
    escape_like,
    quote_identifier,
)


@pytest.fixture
def compiler():
    return ConditionCompiler("default", "repos_new")


def test_rust_scenario(compiler):
    """term=rust, language=all: description match only, stars desc, 50/0 window"""
    compiled = compiler.compile_search("rust", "all", offset=0, limit=50)

    assert "description ILIKE {term:String}" in compiled.sql
    assert compiled.params["term"] == "%rust%"
    assert "language" not in compiled.params
    assert "lower(language)" not in compiled.sql
    assert compiled.sql.endswith("ORDER BY stars DESC, full_name ASC LIMIT {limit:UInt32} OFFSET {offset:UInt32}")
    assert compiled.params["limit"] == 50
    assert compiled.params["offset"] == 0
    assert "FROM `default`.`repos_new` FINAL" in compiled.sql


def test_language_clause_is_case_insensitive(compiler):
    compiled = compiler.compile_search("", "Rust", offset=100, limit=25)

    assert "WHERE lower(language) = lower({language:String})" in compiled.sql
    assert compiled.params["language"] == "Rust"
    assert "term" not in compiled.params
    assert compiled.params["offset"] == 100


def test_both_clauses_are_conjunctive(compiler):
    compiled = compiler.compile_search("web framework", "Go", offset=0, limit=50)

    assert "description ILIKE {term:String} AND lower(language) = lower({language:String})" in compiled.sql


def test_empty_filters_mean_everything(compiler):
    compiled = compiler.compile_search("   ", "ALL", offset=0, limit=50)

    assert "WHERE" not in compiled.sql
    assert compiled.params == {"limit": 50, "offset": 0}


def test_fixed_column_list(compiler):
    compiled = compiler.compile_default(0, 50)

    assert compiled.sql.startswith(f"SELECT {', '.join(REPO_COLUMNS)} FROM")
    assert "*" not in compiled.sql


@pytest.mark.parametrize(
    "term,language",
    [
        ("'; DROP TABLE repos_new; --", "all"),
        ("rust", "Go'; SELECT 1; --"),
        ("it's", "C++"),
        ("a;b", "x' OR '1'='1"),
    ],
)
def test_user_input_never_reaches_query_text(compiler, term, language):
    """Apostrophes and semicolons from user input stay in bound parameters"""
    compiled = compiler.compile_search(term, language, offset=0, limit=50)

    assert "'" not in compiled.sql
    assert ";" not in compiled.sql
    assert term.strip() not in compiled.sql
    if language != "all":
        assert language not in compiled.sql


def test_like_wildcards_match_literally():
    assert escape_like("100%_done\\") == "100\\%\\_done\\\\"


def test_quote_identifier_rejects_anything_but_names():
    assert quote_identifier("repos_new") == "`repos_new`"
    with pytest.raises(ValueError):
        quote_identifier("repos`; DROP")


def test_count_query(compiler):
    compiled = compiler.compile_count()

    assert compiled.sql == "SELECT count() AS total FROM `default`.`repos_new` FINAL"
    assert compiled.params == {}
