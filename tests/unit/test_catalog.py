"""
Tests for the source catalog, URL templating and value transforms.
"""

import pytest
import yaml

from scoutcore.catalog import SourceCatalog, build_context, render, target_from_record
from scoutcore.catalog.transforms import celsius, percent_text, strip_text, to_float, top_five
from scoutcore.protocols import ExtractionTarget, QueryAnalysis, QueryCategory, SelectorSpec


@pytest.fixture
def catalog():
    return SourceCatalog.default()


@pytest.mark.unit
class TestSourceCatalog:
    def test_exchange_rate_rank_order(self, catalog):
        names = [t.name for t in catalog.lookup(QueryCategory.EXCHANGE_RATE)]
        assert names[:2] == ["Open Exchange Rates API", "ExchangeRate-API"]
        assert "Google Finance" in names

    def test_lookup_only_returns_tagged_targets(self, catalog):
        for category in (QueryCategory.CRYPTO, QueryCategory.WEATHER, QueryCategory.NEWS):
            targets = catalog.lookup(category)
            assert targets
            assert all(category in t.categories for t in targets)

    def test_general_lists_own_targets_then_everything_else(self, catalog):
        general = catalog.lookup(QueryCategory.GENERAL)
        names = [t.name for t in general]
        own = [t.name for t in catalog.all_targets() if QueryCategory.GENERAL in t.categories]

        assert names[: len(own)] == own
        assert len(names) == len(set(names)) == len(catalog)

    def test_every_category_has_targets(self, catalog):
        assert set(catalog.categories()) == set(QueryCategory)

    def test_duplicate_names_rejected(self):
        target = ExtractionTarget(name="A", url="https://a.example", categories=(QueryCategory.NEWS,))
        with pytest.raises(ValueError, match="Duplicate"):
            SourceCatalog([target, target])

    def test_contains_and_get(self, catalog):
        assert "Binance" in catalog
        assert catalog.get("Binance").supports_direct_api
        assert catalog.get("missing") is None

    def test_targets_are_read_only(self, catalog):
        target = catalog.get("Yahoo Finance")
        assert isinstance(target.selector_rules["rate"], SelectorSpec)
        with pytest.raises(TypeError):
            target.selector_rules["rate"] = "x"  # type: ignore[index]

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "catalog.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "targets": [
                        {
                            "name": "Local Rates",
                            "url": "https://rates.example/{base}",
                            "categories": ["exchange_rate"],
                            "fallback_api_urls": ["https://rates.example/api/{base}"],
                            "api_fields": {"rate": "rates.{quote}"},
                            "selector_rules": {"rate": {"selector": "span.rate", "attribute": "data-value"}},
                            "value_transforms": {"rate": "to_float"},
                        }
                    ]
                }
            )
        )
        catalog = SourceCatalog.from_yaml(path)
        target = catalog.get("Local Rates")

        assert len(catalog) == 1
        assert target.categories == (QueryCategory.EXCHANGE_RATE,)
        assert target.selector_rules["rate"].attribute == "data-value"
        assert target.value_transforms["rate"] is to_float

    def test_unknown_transform_rejected(self):
        with pytest.raises(ValueError, match="Unknown value transform"):
            target_from_record(
                {"name": "X", "url": "https://x", "categories": ["news"], "value_transforms": {"a": "nope"}}
            )

    def test_unknown_category_rejected(self):
        with pytest.raises(ValueError, match="Unknown category"):
            target_from_record({"name": "X", "url": "https://x", "categories": ["sports"]})


@pytest.mark.unit
class TestTemplates:
    def test_context_from_currency_entities(self):
        analysis = QueryAnalysis(category=QueryCategory.EXCHANGE_RATE, entities=("EUR", "USD"))
        context = build_context("EUR to USD", analysis)
        assert context["base"] == "EUR"
        assert context["quote"] == "USD"

    def test_single_currency_equal_to_default_quote_is_swapped(self):
        analysis = QueryAnalysis(category=QueryCategory.EXCHANGE_RATE, entities=("MXN",))
        context = build_context("MXN", analysis)
        assert (context["base"], context["quote"]) == ("MXN", "USD")

    def test_context_defaults_without_analysis(self):
        context = build_context("  anything  ")
        assert context["query"] == "anything"
        assert context["coin_id"] == "bitcoin"
        assert context["city"] == "Mexico City"
        assert context["lat"] == "19.4326"

    def test_context_coin_and_city(self):
        analysis = QueryAnalysis(category=QueryCategory.CRYPTO, entities=("ETH", "Madrid"))
        context = build_context("eth madrid", analysis)
        assert context["coin"] == "ETH"
        assert context["coin_id"] == "ethereum"
        assert context["city"] == "Madrid"
        assert context["lon"] == "-3.7038"

    def test_render_quotes_values(self):
        url = render("https://x.example/?q={query}&b={base}", {"query": "new york weather", "base": "USD"})
        assert url == "https://x.example/?q=new+york+weather&b=USD"

    def test_render_keeps_unknown_placeholders(self):
        assert render("rates.{quote}.{other}", {"quote": "MXN"}, url=False) == "rates.MXN.{other}"


@pytest.mark.unit
class TestTransforms:
    def test_to_float_takes_first_item(self):
        assert to_float(["17,32", "18"]) == 17.32
        assert to_float([]) is None

    def test_percent_text(self):
        assert percent_text(1.2) == "+1.20%"
        assert percent_text("-0.5") == "-0.50%"
        assert percent_text("n/a") is None

    def test_celsius(self):
        assert celsius("75°F") == 23.9

    def test_strip_text_and_top_five(self):
        assert strip_text("  Partly \n Cloudy ") == "Partly Cloudy"
        assert top_five(["a", "", "b", "c", "d", "e", "f"]) == ["a", "b", "c", "d", "e"]
