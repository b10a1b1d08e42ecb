"""Unit tests for supplier routing."""

import pytest

from app.config.models import BrandGroupConfig, SupplierEntry, SuppliersConfig
from app.lifecycle import SupplierRouter
from app.lifecycle.suppliers import RULE_BRAND_GROUP, RULE_EXACT, RULE_PARTIAL, RULE_UNRESOLVED


@pytest.fixture
def config():
    return SuppliersConfig(
        brand_group=BrandGroupConfig(
            supplier=SupplierEntry(name="Com Plus", email="orders@complus.example.com"),
        ),
        suppliers=[
            SupplierEntry(name="Candy Parts Shop", email="shop@candyparts.example.com"),
            SupplierEntry(name="Tehno Parts", email="tehno@example.com", phone="+38267111222"),
            SupplierEntry(name="Frigo Servis", phone="+38269333444"),
        ],
    )


@pytest.fixture
def router(config):
    return SupplierRouter(config)


class TestBrandGroup:
    """Tests for brand group routing."""

    def test_manufacturer_in_group_wins_over_similar_supplier(self, router):
        match = router.resolve("Candy Parts Shop", manufacturer="Candy")

        assert match.rule == RULE_BRAND_GROUP
        assert match.name == "Com Plus"
        assert match.email == "orders@complus.example.com"

    def test_brand_name_as_supplier(self, router):
        match = router.resolve("turbo  air")

        assert match.rule == RULE_BRAND_GROUP

    def test_group_name_as_supplier(self, router):
        assert router.resolve("COM PLUS").rule == RULE_BRAND_GROUP

    def test_group_without_dedicated_supplier_is_unresolved(self):
        router = SupplierRouter(SuppliersConfig())

        match = router.resolve(None, manufacturer="Electrolux")

        assert match.rule == RULE_BRAND_GROUP
        assert match.name == "Com Plus"
        assert not match.resolved


class TestNameMatching:
    """Tests for exact and partial name matching."""

    def test_exact_match_ignores_case_and_spacing(self, router):
        match = router.resolve("  tehno   PARTS ")

        assert match.rule == RULE_EXACT
        assert match.name == "Tehno Parts"
        assert match.phone == "+38267111222"

    def test_exact_beats_partial(self, router):
        match = router.resolve("Candy Parts Shop")

        assert match.rule == RULE_EXACT
        assert match.email == "shop@candyparts.example.com"

    def test_partial_token_match(self, router):
        match = router.resolve("Frigo")

        assert match.rule == RULE_PARTIAL
        assert match.name == "Frigo Servis"
        assert match.resolved

    def test_unknown_supplier(self, router):
        match = router.resolve("Bosch Centar")

        assert match.rule == RULE_UNRESOLVED
        assert match.requested_name == "Bosch Centar"
        assert match.email is None
        assert not match.resolved

    @pytest.mark.parametrize("name", [None, "", "   "])
    def test_missing_name(self, router, name):
        assert router.resolve(name).rule == RULE_UNRESOLVED

    def test_as_dict(self, router):
        assert router.resolve("Tehno Parts").as_dict() == {
            "requested_name": "Tehno Parts",
            "rule": "exact",
            "name": "Tehno Parts",
            "email": "tehno@example.com",
            "phone": "+38267111222",
        }


class TestReplaceTable:
    """Tests for swapping the routing table."""

    def test_replace_table(self, router):
        assert router.resolve("Bosch Centar").rule == RULE_UNRESOLVED

        router.replace_table(
            SuppliersConfig(suppliers=[SupplierEntry(name="Bosch Centar", email="bosch@example.com")])
        )

        assert router.resolve("Bosch Centar").email == "bosch@example.com"
        assert router.resolve("Tehno Parts").rule == RULE_UNRESOLVED

    def test_duplicate_suppliers_rejected(self):
        with pytest.raises(ValueError):
            SuppliersConfig(
                suppliers=[SupplierEntry(name="Tehno Parts"), SupplierEntry(name="tehno parts")]
            )
