from insider_tracker.sec.transaction_codes import (
    TRANSACTION_CODES,
    transaction_description,
    transaction_label,
    transaction_side,
)


def test_labels():
    assert transaction_label("P") == "P - Purchase"
    assert transaction_label("s") == "S - Sale"
    assert transaction_label("Q") == "Q - Unknown"


def test_sides():
    assert transaction_side("P") == "buy"
    assert transaction_side("F") == "sell"
    assert transaction_side("J") == "other"
    assert transaction_side(None) == "other"
    assert transaction_side("M") == "buy"
    assert transaction_side("G") == "sell"


def test_every_code_has_a_description():
    for code in TRANSACTION_CODES:
        assert transaction_description(code) != "Unknown transaction type"
    assert transaction_description("Q") == "Unknown transaction type"
