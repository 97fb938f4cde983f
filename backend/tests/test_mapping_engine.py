"""Tests for mapping suggestion, validation and value transformations."""

import pytest

from pim_transfer.core.enums import EntityType
from pim_transfer.services import mapping_engine
from pim_transfer.services.template_generator import template_headers


def test_suggests_product_mapping_with_full_confidence():
    suggestion = mapping_engine.suggest_mapping(
        ["Product Name", "SKU Code", "Unit Price"], EntityType.PRODUCTS
    )

    assert suggestion.mapping == {
        "Product Name": "name",
        "SKU Code": "sku",
        "Unit Price": "price",
    }
    assert suggestion.confidence == 1.0
    assert suggestion.unmapped_target_required == []


def test_suggestion_is_deterministic_and_confidence_is_a_ratio():
    headers = ["Item Title", "Part Number", "Colour Family", "zzz"]

    first = mapping_engine.suggest_mapping(headers, EntityType.PRODUCTS)
    second = mapping_engine.suggest_mapping(headers, EntityType.PRODUCTS)

    assert first == second
    assert 0.0 <= first.confidence <= 1.0
    assert first.confidence == len(first.mapping) / len(headers)
    assert "zzz" in first.unmapped_source


def test_no_headers_means_zero_confidence():
    suggestion = mapping_engine.suggest_mapping([], EntityType.CATEGORIES)

    assert suggestion.confidence == 0.0
    assert suggestion.mapping == {}
    assert suggestion.unmapped_target_required == ["name"]


def test_fuzzy_match_catches_misspellings():
    suggestion = mapping_engine.suggest_mapping(["Quantiy"], EntityType.PRODUCTS)

    assert suggestion.mapping == {"Quantiy": "quantity"}


def test_empty_normalized_header_stays_unmapped():
    suggestion = mapping_engine.suggest_mapping(["---"], EntityType.PRODUCTS)

    assert suggestion.mapping == {}
    assert suggestion.unmapped_source == ["---"]


@pytest.mark.parametrize("entity_type", list(EntityType))
def test_canonical_template_headers_map_to_themselves(entity_type):
    headers = template_headers(entity_type)

    suggestion = mapping_engine.suggest_mapping(headers, entity_type)

    assert suggestion.mapping == {header: header for header in headers}


def test_validate_mapping_reports_missing_unknown_and_duplicate_targets():
    result = mapping_engine.validate_mapping(
        {"Title": "name", "Alt Title": "name", "Whatever": "colour"}, EntityType.PRODUCTS
    )

    assert not result.valid
    assert "Required field 'sku' is not mapped" in result.errors
    assert "Unknown target field 'colour' for column 'Whatever'" in result.errors
    assert "Field 'name' is mapped from 2 columns" in result.errors


def test_validate_mapping_accepts_complete_mapping():
    result = mapping_engine.validate_mapping({"Code": "code", "Label": "name"}, EntityType.ATTRIBUTES)

    assert result.valid
    assert result.errors == []


def test_map_record_trims_and_skips_missing_columns():
    mapped = mapping_engine.map_record(
        {"Title": "  Shirt ", "SKU": "S-1"}, {"Title": "name", "SKU": "sku", "Cost": "price"}
    )

    assert mapped == {"name": "Shirt", "sku": "S-1"}


def test_defaults_fill_only_empty_values():
    merged = mapping_engine.merge_with_defaults(
        {"status": "", "price": "5"}, {"status": "published", "price": 10, "brand": None}
    )

    assert merged == {"status": "published", "price": "5", "brand": ""}


def test_transformations_apply_in_order_and_ignore_unknown_names():
    values = {"name": "  <b>Red Shirt</b> ", "price": "1,299.50", "sku": "ab-1"}

    result = mapping_engine.apply_transformations(
        values,
        {"name": ["remove_html", "trim", "slug"], "price": "number", "sku": ["uppercase", "nope"]},
    )

    assert result == {"name": "red-shirt", "price": "1299.5", "sku": "AB-1"}


def test_date_and_boolean_transformations():
    assert mapping_engine.transform_value("31/12/2024", "date") == "2024-12-31"
    assert mapping_engine.transform_value("Yes", "boolean") == "true"
    assert mapping_engine.transform_value("nah", "boolean") == "false"


def test_levenshtein_and_similarity():
    assert mapping_engine.levenshtein("kitten", "sitting") == 3
    assert mapping_engine.similarity("", "") == 1.0
    assert mapping_engine.similarity("price", "price") == 1.0
