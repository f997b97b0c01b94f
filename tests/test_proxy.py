"""
Tests for reading relationship values without triggering lazy loads.
"""
import pytest
from pydantic import ValidationError

from entcascade.persistence.metadata import default_registry
from entcascade.persistence.proxy import (
    CascadeTarget, LazyCollection, LazyMap, LazyReference, ProxyUnwrapper, TargetKind
)
from tests.models import Folder, LineItem, Order, Page


@pytest.fixture
def unwrapper():
    return ProxyUnwrapper()


def test_absent_values(unwrapper):
    assert unwrapper.unwrap(None).kind is TargetKind.ABSENT
    assert unwrapper.unwrap("not an entity").kind is TargetKind.ABSENT


def test_single_entity(unwrapper):
    item = LineItem(sku="A")
    target = unwrapper.unwrap(item)
    assert target.kind is TargetKind.ENTITY
    assert target.entities == [item]


def test_plain_containers_are_initialized(unwrapper):
    a, b = LineItem(sku="A"), LineItem(sku="B")
    assert unwrapper.unwrap([a, b]).entities == [a, b]
    assert unwrapper.unwrap((a,)).kind is TargetKind.SEQUENCE
    assert unwrapper.unwrap({"first": a, "second": b}).kind is TargetKind.MAPPING
    assert unwrapper.unwrap({"first": a, "second": b}).entities == [a, b]
    assert unwrapper.is_initialized([a])


def test_non_entity_elements_are_ignored(unwrapper):
    item = LineItem(sku="A")
    assert unwrapper.unwrap([item, 3, "x", None]).entities == [item]


def test_uninitialized_collection_is_not_loaded(unwrapper):
    pages = LazyCollection(loader=lambda: [Page(title="one")])
    target = unwrapper.unwrap(pages)
    assert target.kind is TargetKind.UNINITIALIZED
    assert target.entities == []
    assert pages.load_count == 0
    assert not unwrapper.is_initialized(pages)


def test_initialized_collection(unwrapper):
    page = Page(title="one")
    pages = LazyCollection(loader=lambda: [page])
    assert len(pages) == 1
    target = unwrapper.unwrap(pages)
    assert target.kind is TargetKind.SEQUENCE
    assert target.entities == [page]
    assert pages.load_count == 1


def test_collection_with_initial_items(unwrapper):
    page = Page(title="one")
    assert unwrapper.unwrap(LazyCollection(items=[page])).entities == [page]


def test_lazy_collection_needs_a_source():
    with pytest.raises(ValueError):
        LazyCollection()


def test_uninitialized_map_is_not_loaded(unwrapper):
    labels = LazyMap(loader=lambda: {"a": Page()})
    assert unwrapper.unwrap(labels).kind is TargetKind.UNINITIALIZED
    assert labels.load_count == 0


def test_initialized_map(unwrapper):
    page = Page(title="one")
    labels = LazyMap(items={"one": page})
    target = unwrapper.unwrap(labels)
    assert target.kind is TargetKind.MAPPING
    assert target.entities == [page]


def test_uninitialized_reference_is_not_loaded(unwrapper):
    owner = LazyReference(loader=lambda: Page(title="owner"))
    assert unwrapper.unwrap(owner).kind is TargetKind.UNINITIALIZED
    assert owner.load_count == 0


def test_initialized_reference_resolves_to_entity(unwrapper):
    page = Page(title="owner")
    owner = LazyReference(loader=lambda: page)
    assert owner.get() is page
    target = unwrapper.unwrap(owner)
    assert target.kind is TargetKind.ENTITY
    assert target.entities == [page]


def test_initialized_empty_reference_is_absent(unwrapper):
    owner = LazyReference(loader=lambda: None)
    owner.get()
    assert unwrapper.unwrap(owner).kind is TargetKind.ABSENT


def test_target_of_reads_relationship(unwrapper):
    item = LineItem(sku="A")
    order = Order(items=[item])
    items = default_registry.describe(Order).relationship("items")
    assert unwrapper.target_of(order, items).entities == [item]


def test_target_of_unset_relationship(unwrapper):
    folder = Folder()
    owner = default_registry.describe(Folder).relationship("owner")
    assert unwrapper.target_of(folder, owner).kind is TargetKind.ABSENT


def test_target_is_immutable():
    target = CascadeTarget.absent()
    with pytest.raises(ValidationError):
        target.kind = TargetKind.ENTITY
