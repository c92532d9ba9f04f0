import pytest

from carcare.services.mismatch import check_match, describe_mismatches, quantity_within_tolerance

RECOMMENDED = {"oil_type": "Toyota Genuine", "oil_viscosity": "0W-20", "oil_quantity": 4.5}


def _entered(**overrides):
    data = {"oil_used": "Toyota Genuine", "oil_viscosity": "0W-20", "oil_quantity": 4.5}
    data.update(overrides)
    return data


def test_exact_match():
    result = check_match(_entered(), RECOMMENDED)
    assert result == {"is_matching": True, "mismatches": []}


@pytest.mark.parametrize("quantity", [4.0, 4.2, 4.5, 4.8, 5.0])
def test_quantity_inside_tolerance(quantity):
    assert check_match(_entered(oil_quantity=quantity), RECOMMENDED)["is_matching"] is True


@pytest.mark.parametrize("quantity", [3.9, 5.1, 2.0])
def test_quantity_outside_tolerance(quantity):
    result = check_match(_entered(oil_quantity=quantity), RECOMMENDED)
    assert result["is_matching"] is False
    assert [m["key"] for m in result["mismatches"]] == ["oil_quantity"]


def test_quantity_mismatch_is_formatted_in_liters():
    mismatch = check_match(_entered(oil_quantity=3.9), RECOMMENDED)["mismatches"][0]
    assert mismatch["field"] == "الكمية"
    assert mismatch["expected"] == "4.5 لتر"
    assert mismatch["actual"] == "3.9 لتر"
    assert mismatch["severity"] == "medium"


def test_text_comparison_ignores_case_and_padding():
    result = check_match(_entered(oil_used=" toyota genuine ", oil_viscosity="0w-20"), RECOMMENDED)
    assert result["is_matching"] is True


def test_every_field_reported():
    result = check_match(_entered(oil_used="Castrol", oil_viscosity="5W-30", oil_quantity=6), RECOMMENDED)
    assert [m["key"] for m in result["mismatches"]] == ["oil_type", "oil_viscosity", "oil_quantity"]
    viscosity = result["mismatches"][1]
    assert viscosity["field"] == "اللزوجة"
    assert viscosity["expected"] == "0W-20"
    assert viscosity["actual"] == "5W-30"
    assert viscosity["severity"] == "high"


def test_tolerance_boundary():
    assert quantity_within_tolerance(4.0, 4.5) is True
    assert quantity_within_tolerance(3.99, 4.5) is False


def test_local_narrative():
    ok = describe_mismatches(check_match(_entered(), RECOMMENDED), RECOMMENDED)
    assert "مطابقة" in ok["analysis"]

    bad = describe_mismatches(check_match(_entered(oil_viscosity="5W-30"), RECOMMENDED), RECOMMENDED)
    assert "اللزوجة" in bad["analysis"]
    assert "0W-20" in bad["recommendation"]
    assert "4.5 لتر" in bad["recommendation"]
