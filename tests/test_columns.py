import pytest

from verifier.columns import HeaderDetector, MissingRequiredColumns, detect_columns, normalize_header


def test_normalize_header_collapses_case_and_separators():
    assert normalize_header("  Full_Name ") == "full name"
    assert normalize_header("E-Mail") == "e mail"
    assert normalize_header("JOB   TITLE") == "job title"


def test_detects_basic_headers():
    roles = detect_columns(["Name", "Email", "Company", "Position"])
    assert roles == {"name": "Name", "email": "Email", "company": "Company", "position": "Position"}


def test_synonyms_are_case_insensitive_and_trimmed():
    roles = detect_columns([" employee name ", "WORK EMAIL", "Employer", "Job Title"])
    assert roles["name"] == " employee name "
    assert roles["email"] == "WORK EMAIL"
    assert roles["company"] == "Employer"
    assert roles["position"] == "Job Title"


def test_first_matching_column_wins():
    roles = detect_columns(["Full Name", "Name", "Email", "Company", "Title", "Position"])
    assert roles["name"] == "Full Name"
    assert roles["position"] == "Title"


def test_optional_columns_attached_when_present():
    roles = detect_columns(["Name", "Email", "Company", "Position", "Phone", "DOB", "Address"])
    assert roles["contact"] == "Phone"
    assert roles["date_of_birth"] == "DOB"
    assert roles["address"] == "Address"


def test_optional_columns_absent_is_not_an_error():
    roles = detect_columns(["Name", "Email", "Company", "Position"])
    assert "contact" not in roles
    assert "date_of_birth" not in roles


def test_missing_required_columns_are_named():
    with pytest.raises(MissingRequiredColumns) as exc:
        detect_columns(["Name", "Phone", "Department"])
    assert exc.value.missing == ["email", "company", "position"]
    assert "email" in str(exc.value)
    assert exc.value.code == "missing_required_columns"


def test_fuzzy_pass_catches_near_miss_spelling():
    detector = HeaderDetector(fuzzy_enabled=True, fuzzy_threshold=90)
    roles = detector.detect(["Employe Name", "Email", "Company", "Position"])
    assert roles["name"] == "Employe Name"


def test_fuzzy_pass_can_be_disabled():
    detector = HeaderDetector(fuzzy_enabled=False)
    with pytest.raises(MissingRequiredColumns) as exc:
        detector.detect(["Employe Name", "Email", "Company", "Position"])
    assert exc.value.missing == ["name"]


def test_unrelated_header_is_not_fuzzy_matched():
    detector = HeaderDetector(fuzzy_enabled=True, fuzzy_threshold=90)
    with pytest.raises(MissingRequiredColumns):
        detector.detect(["Name", "Email", "Company Phone", "Department"])


def test_each_role_gets_its_own_column():
    roles = detect_columns(["Name", "Email", "Company", "Role", "Location", "Title"])
    assert roles["position"] == "Role"
    assert roles["address"] == "Location"
    assert len(set(roles.values())) == len(roles)
