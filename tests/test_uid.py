from nfcbridge.core.uid import uid_type


def test_single_double_triple_sizes() -> None:
    assert uid_type("04A1B2C3") == "Single size UID (4 bytes)"
    assert uid_type("04A1B2C3D4E5F6") == "Double size UID (7 bytes)"
    assert uid_type("04A1B2C3D4E5F60718293A"[:20]) == "Triple size UID (10 bytes)"


def test_other_lengths_are_unknown() -> None:
    assert "Unknown" in uid_type("04A1B2")
    assert uid_type("04A1B2C3D4") == "Unknown UID type (5 bytes)"
    assert "Unknown" in uid_type("")
