from reference_engine.core.identifiers import (
    extract_domain,
    is_valid_doi,
    normalize_author,
    normalize_doi,
    normalize_title,
    normalize_url,
    normalized_author_list,
)


def test_normalize_doi_strips_prefixes_and_lowercases():
    assert normalize_doi("https://doi.org/10.1000/ABC") == "10.1000/abc"
    assert normalize_doi("DOI:10.1000/XYZ") == "10.1000/xyz"
    assert normalize_doi("  HTTPS://DX.DOI.ORG/10.5555/ABC  ") == "10.5555/abc"


def test_normalize_doi_handles_missing_values():
    assert normalize_doi("") is None
    assert normalize_doi("   ") is None
    assert normalize_doi(None) is None


def test_is_valid_doi_requires_registrant_prefix():
    assert is_valid_doi("doi:10.1234/x")
    assert is_valid_doi("https://doi.org/10.48550/arXiv.1706.03762")
    assert not is_valid_doi("10.12/x")
    assert not is_valid_doi("not-a-doi")
    assert not is_valid_doi(None)


def test_normalize_title_strips_punctuation_and_collapses_whitespace():
    assert normalize_title("  The   Quick, Brown   Fox! ") == "the quick brown fox"
    assert normalize_title(None) == ""


def test_normalize_title_handles_unicode():
    assert normalize_title("Ｔｅｓｔ　Ｔｉｔｌｅ") == "test title"


def test_author_normalization_ignores_case_spacing_and_order():
    assert normalize_author("  Ada   LOVELACE ") == "ada lovelace"
    assert normalized_author_list([" Bob ", "alice"]) == ["alice", "bob"]
    assert normalized_author_list(None) == []


def test_normalize_url_drops_scheme_www_and_trailing_slash():
    assert normalize_url("https://www.Example.org/paper/") == "example.org/paper"
    assert normalize_url(None) == ""


def test_extract_domain_returns_hostname_or_empty_string():
    assert extract_domain("https://pubmed.ncbi.nlm.nih.gov/123") == "pubmed.ncbi.nlm.nih.gov"
    assert extract_domain("not a url") == ""
    assert extract_domain(None) == ""
