import pytest
from normalizer import normalize_code, normalize_programme_ids


class TestNormalizeCode:
    def test_canonical(self):
        assert normalize_code("CS2040S") == "CS2040S"

    def test_lowercase(self):
        assert normalize_code("cs2040s") == "CS2040S"

    def test_hyphen(self):
        assert normalize_code("CS-2040S") == "CS2040S"

    def test_space(self):
        assert normalize_code("CS 2040S") == "CS2040S"

    def test_spaces_around_hyphen(self):
        assert normalize_code("CS - 1010") == "CS1010"

    def test_three_letter_prefix(self):
        assert normalize_code("GEA1000") == "GEA1000"

    def test_multi_letter_suffix(self):
        assert normalize_code("ma1102r") == "MA1102R"

    def test_invalid_no_digits(self):
        assert normalize_code("UPIP") is None

    def test_invalid_garbage(self):
        assert normalize_code("asdfasdf") is None

    def test_invalid_empty(self):
        assert normalize_code("") is None

    def test_invalid_none(self):
        assert normalize_code(None) is None


class TestNormalizeProgrammeIds:
    def test_list(self):
        ids, rejected = normalize_programme_ids(["CS_MAJOR", "DS_MINOR"])
        assert ids == ["CS_MAJOR", "DS_MINOR"]
        assert rejected == []

    def test_strips_whitespace(self):
        ids, _ = normalize_programme_ids(["  CS_MAJOR "])
        assert ids == ["CS_MAJOR"]

    def test_duplicates_dropped_in_order(self):
        ids, _ = normalize_programme_ids(["DS_MINOR", "CS_MAJOR", "DS_MINOR"])
        assert ids == ["DS_MINOR", "CS_MAJOR"]

    def test_comma_string(self):
        ids, rejected = normalize_programme_ids("CS_MAJOR, DS_MINOR;MATH_2ND_MAJOR")
        assert ids == ["CS_MAJOR", "DS_MINOR", "MATH_2ND_MAJOR"]
        assert rejected == []

    def test_non_string_entries_rejected(self):
        ids, rejected = normalize_programme_ids(["CS_MAJOR", 42, None])
        assert ids == ["CS_MAJOR"]
        assert rejected == [42, None]

    def test_blank_list_entry_rejected(self):
        _, rejected = normalize_programme_ids(["CS_MAJOR", "   "])
        assert rejected == ["   "]

    def test_none(self):
        assert normalize_programme_ids(None) == ([], [])

    @pytest.mark.parametrize("raw", [42, {"id": "CS_MAJOR"}])
    def test_unsupported_container(self, raw):
        ids, rejected = normalize_programme_ids(raw)
        assert ids == []
        assert rejected == [raw]
