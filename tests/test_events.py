import logging

from smb_billing.events import EventBus, MutationEvent


def test_exact_family_and_wildcard_subscribers():
    bus = EventBus()
    seen = []
    bus.subscribe("document.created", lambda e: seen.append(("exact", e.entity_id)))
    bus.subscribe("document.*", lambda e: seen.append(("family", e.entity_id)))
    bus.subscribe("*", lambda e: seen.append(("all", e.entity_id)))
    bus.subscribe("charge.*", lambda e: seen.append(("charge", e.entity_id)))

    delivered = bus.publish(MutationEvent("document.created", "doc-1"))

    assert delivered == 3
    assert seen == [("exact", "doc-1"), ("family", "doc-1"), ("all", "doc-1")]


def test_unsubscribe():
    bus = EventBus()
    seen = []
    unsubscribe = bus.subscribe("charge.deleted", seen.append)

    unsubscribe()
    unsubscribe()

    assert bus.publish(MutationEvent("charge.deleted", "c-1")) == 0
    assert seen == []


def test_failing_handler_is_logged_and_others_still_run(caplog):
    bus = EventBus()
    seen = []

    def explode(event):
        raise RuntimeError("boom")

    bus.subscribe("declaration.created", explode)
    bus.subscribe("declaration.created", seen.append)

    with caplog.at_level(logging.ERROR, logger="smb_billing.events"):
        delivered = bus.publish(MutationEvent("declaration.created", "d-1", {"reference": "DEC-0001-2025"}))

    assert delivered == 1
    assert len(seen) == 1
    assert seen[0].payload == {"reference": "DEC-0001-2025"}
    assert "declaration.created" in caplog.text
