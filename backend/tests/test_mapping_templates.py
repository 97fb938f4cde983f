import pytest

from pim_transfer.core.enums import EntityType
from pim_transfer.core.errors import NotFoundError, ValidationError
from pim_transfer.services.mapping_templates import (
    MappingTemplateCreate,
    MappingTemplateFilters,
    MappingTemplateUpdate,
)

from helpers import PRODUCT_MAPPING


def _create(service, name, **overrides):
    fields = {"name": name, "entity_type": EntityType.PRODUCTS, "mapping": PRODUCT_MAPPING}
    fields.update(overrides)
    return service.create_mapping(MappingTemplateCreate(**fields))


def test_create_and_fetch(service, clock):
    created = _create(service, "Supplier feed", description="Weekly supplier CSV")

    fetched = service.get_mapping(created.id)
    assert fetched.name == "Supplier feed"
    assert fetched.mapping == PRODUCT_MAPPING
    assert fetched.usage_count == 0
    assert fetched.created_at == clock.now()


def test_invalid_mapping_is_rejected(service):
    with pytest.raises(ValidationError) as exc_info:
        _create(service, "Broken", mapping={"Title": "name"})

    assert exc_info.value.field == "mapping"
    assert "Required field 'sku' is not mapped" in exc_info.value.errors


def test_one_default_per_entity_type_and_owner(service):
    first = _create(service, "First", is_default=True, owner_id="u1")
    other_owner = _create(service, "Elsewhere", is_default=True, owner_id="u2")
    second = _create(service, "Second", is_default=True, owner_id="u1")

    assert service.get_mapping(first.id).is_default is False
    assert service.get_mapping(second.id).is_default is True
    assert service.get_mapping(other_owner.id).is_default is True

    service.update_mapping(first.id, MappingTemplateUpdate(is_default=True))
    assert service.get_mapping(second.id).is_default is False


def test_update_changes_only_given_fields(service, clock):
    created = _create(service, "Feed", description="keep me")
    clock.advance(hours=1)

    updated = service.update_mapping(created.id, MappingTemplateUpdate(name="Renamed"))

    assert updated.name == "Renamed"
    assert updated.description == "keep me"
    assert updated.mapping == PRODUCT_MAPPING
    assert updated.updated_at == clock.now()


def test_update_validates_new_mapping(service):
    created = _create(service, "Feed")

    with pytest.raises(ValidationError):
        service.update_mapping(created.id, MappingTemplateUpdate(mapping={"SKU Code": "bogus"}))


def test_list_orders_defaults_then_usage(service, clock):
    plain = _create(service, "Plain", owner_id="u1")
    clock.advance(minutes=1)
    popular = _create(service, "Popular", owner_id="u1")
    clock.advance(minutes=1)
    default = _create(service, "Default", owner_id="u1", is_default=True)
    shared = _create(service, "Shared")
    _create(service, "Someone else", owner_id="u2")
    service.mappings.record_usage(popular.id)
    service.mappings.record_usage(shared.id)

    page = service.list_mappings(MappingTemplateFilters(owner_id="u1"))
    assert [item.id for item in page.items] == [default.id, shared.id, popular.id, plain.id]
    assert page.total == 4

    own_only = service.list_mappings(MappingTemplateFilters(owner_id="u1", include_shared=False))
    assert {item.id for item in own_only.items} == {plain.id, popular.id, default.id}


def test_inactive_templates_are_hidden_from_lists(service):
    created = _create(service, "Retired")
    service.update_mapping(created.id, MappingTemplateUpdate(is_active=False))

    assert service.list_mappings().items == []


def test_list_filters_by_entity_type(service):
    _create(service, "Products")
    categories = _create(
        service, "Categories", entity_type=EntityType.CATEGORIES, mapping={"Title": "name"}
    )

    page = service.list_mappings(MappingTemplateFilters(entity_type=EntityType.CATEGORIES))
    assert [item.id for item in page.items] == [categories.id]


def test_record_usage_bumps_counters(service, clock):
    created = _create(service, "Feed")
    clock.advance(days=1)

    used = service.mappings.record_usage(created.id)

    assert used.usage_count == 1
    assert used.last_used_at == clock.now()


def test_delete_then_get_is_not_found(service):
    created = _create(service, "Feed")

    service.delete_mapping(created.id)

    with pytest.raises(NotFoundError):
        service.get_mapping(created.id)
    with pytest.raises(NotFoundError):
        service.delete_mapping(created.id)
