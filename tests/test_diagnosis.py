from logdiag.diagnosis import Category, Diagnosis, Finding


def test_uncategorized_findings_keep_current_category() -> None:
    diagnosis = Diagnosis()
    diagnosis.record(Finding("a", "first", Category.INTERNET))
    diagnosis.record(Finding("b", "second", None))
    assert diagnosis.category == Category.INTERNET
    assert diagnosis.captions == ["first", "second"]


def test_finalize_without_category_is_unknown() -> None:
    diagnosis = Diagnosis()
    diagnosis.record(Finding("a", "caption only", None))
    assert diagnosis.finalize().category == Category.UNKNOWN
    assert diagnosis.reporting_allowed


def test_only_system_errors_block_reporting() -> None:
    for category in Category:
        diagnosis = Diagnosis(category=category)
        assert diagnosis.reporting_allowed == (category != Category.SYSTEM)


def test_to_dict() -> None:
    diagnosis = Diagnosis()
    diagnosis.extend([Finding("dpkg_lock", "busy", Category.SYSTEM)])
    assert diagnosis.to_dict() == {
        "category": "system",
        "reporting_allowed": False,
        "captions": ["busy"],
        "rules": ["dpkg_lock"],
    }
