"""
Tests for the cascade walker: reachability, cycles, lazy data and failures.
"""
import pytest

from entcascade.errors import CascadeFailure
from entcascade.persistence.events import UPDATED, LifecycleEventEmitter
from entcascade.persistence.proxy import LazyCollection, LazyReference
from entcascade.persistence.visited import VisitedSet
from entcascade.persistence.walker import CascadeWalker
from tests.models import Customer, Folder, Fragile, Keyless, LineItem, Node, Order, Page


@pytest.fixture
def walker(emitter):
    return CascadeWalker(emitter)


def test_marks_cascading_relationships_only(walker, recorder):
    customer = Customer(name="Ada")
    items = [LineItem(sku="A"), LineItem(sku="B")]
    order = Order(reference="o-1", items=items, customer=customer)

    walker.cascade(order, True, VisitedSet())

    assert order.will_be_saved
    assert all(item.will_be_saved for item in items)
    assert not customer.will_be_saved
    assert recorder.entities(UPDATED) == [order, *items]


def test_clearing_phase_emits_nothing(walker, recorder):
    item = LineItem(sku="A")
    order = Order(items=[item])
    walker.cascade(order, True, VisitedSet())
    recorder.events.clear()

    walker.cascade(order, False, VisitedSet())

    assert not order.will_be_saved
    assert not item.will_be_saved
    assert recorder.events == []


def test_cycle_terminates(walker, recorder):
    a, b = Node(name="a"), Node(name="b")
    a.links = [b]
    b.links = [a]

    walker.cascade(a, True, VisitedSet())

    assert a.will_be_saved and b.will_be_saved
    assert recorder.count(UPDATED, a) == 1
    assert recorder.count(UPDATED, b) == 1


def test_self_reference(walker, recorder):
    a = Node(name="a")
    a.partner = a
    walker.cascade(a, True, VisitedSet())
    assert recorder.entities(UPDATED) == [a]


def test_diamond_visits_shared_entity_once(walker, recorder):
    a, b, c, d = (Node(name=name) for name in "abcd")
    a.links = [b, c]
    b.links = [d]
    c.links = [d]

    walker.cascade(a, True, VisitedSet())

    # Depth-first, pre-order, declaration order
    assert recorder.entities(UPDATED) == [a, b, d, c]


def test_relationship_order_follows_declaration(walker, recorder):
    a, link, partner = Node(name="a"), Node(name="link"), Node(name="partner")
    a.partner = partner
    a.links = [link]
    walker.cascade(a, True, VisitedSet())
    assert recorder.entities(UPDATED) == [a, link, partner]


def test_non_cascading_reference_is_not_followed(walker):
    a, peer = Node(name="a"), Node(name="peer")
    a.peer = peer
    walker.cascade(a, True, VisitedSet())
    assert not peer.will_be_saved


def test_uninitialized_relationships_are_left_alone(walker, recorder):
    pages = LazyCollection(loader=lambda: [Page(title="hidden")])
    owner = LazyReference(loader=lambda: Page(title="owner"))
    folder = Folder(pages=pages, owner=owner)

    walker.cascade(folder, True, VisitedSet())

    assert pages.load_count == 0
    assert owner.load_count == 0
    assert recorder.entities(UPDATED) == [folder]


def test_initialized_lazy_relationships_are_followed(walker):
    page = Page(title="loaded")
    pages = LazyCollection(loader=lambda: [page])
    list(pages)
    folder = Folder(pages=pages, labels={"x": Page(title="label")})

    walker.cascade(folder, True, VisitedSet())

    assert page.will_be_saved
    assert folder.labels["x"].will_be_saved
    assert pages.load_count == 1


def test_entities_without_keys(walker, recorder):
    child = Keyless()
    root = Keyless(children=[child])
    walker.cascade(root, True, VisitedSet())
    assert recorder.entities(UPDATED) == [root, child]


def test_visit_hook_called_once_per_entity(walker):
    a, b = Node(name="a"), Node(name="b")
    a.links = [b, b]
    b.partner = a
    seen = []
    walker.cascade(a, True, VisitedSet(), visit=seen.append)
    assert seen == [a, b]


def test_visit_hook_not_called_when_clearing(walker):
    seen = []
    walker.cascade(Node(name="a"), False, VisitedSet(), visit=seen.append)
    assert seen == []


def test_shared_visited_set_skips_known_entities(walker, recorder):
    a, b = Node(name="a"), Node(name="b")
    a.links = [b]
    visited = VisitedSet()
    visited.try_enter(b)

    walker.cascade(a, True, visited)

    assert recorder.entities(UPDATED) == [a]
    # The flag is still written on the way in
    assert b.will_be_saved


def test_failure_is_wrapped(walker):
    with pytest.raises(CascadeFailure) as excinfo:
        walker.cascade(Fragile(id=1), True, VisitedSet())
    assert str(excinfo.value) == "During cascading save()"
    assert isinstance(excinfo.value.cause, RuntimeError)
    assert excinfo.value.__cause__ is excinfo.value.cause


def test_listener_failure_is_wrapped():
    emitter = LifecycleEventEmitter()

    def refuse(event_name, entity):
        raise ValueError(f"{entity!r} is read-only")

    emitter.subscribe(UPDATED, refuse)
    walker = CascadeWalker(emitter)
    with pytest.raises(CascadeFailure) as excinfo:
        walker.cascade(LineItem(sku="A"), True, VisitedSet())
    assert isinstance(excinfo.value.cause, ValueError)


def test_long_chain_does_not_hit_recursion_limit(walker, recorder):
    nodes = [Node(name=str(i)) for i in range(5000)]
    for current, following in zip(nodes, nodes[1:]):
        current.links = [following]

    walker.cascade(nodes[0], True, VisitedSet())

    assert all(node.will_be_saved for node in nodes)
    assert len(recorder.entities(UPDATED)) == 5000
