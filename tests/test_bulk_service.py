from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import IntegrityError

from sprinty.bulk import BulkService, insert_or_ignore
from sprinty.db import (
    Attachment,
    Card,
    CardActivity,
    CardAssignee,
    CardLabel,
    ChecklistItem,
    Comment,
)
from sprinty.errors import SprintyError, UnsupportedDialectError
from sprinty.schemas import (
    BulkAddLabels,
    BulkArchiveCards,
    BulkAssignUsers,
    BulkDeleteCards,
    BulkMoveCards,
    BulkSetDueDate,
)


@pytest.fixture
def bulk(session_factory):
    return BulkService(session_factory)


@pytest.fixture
def source(make_list, make_card):
    todo = make_list("To do")
    return todo, [make_card(todo.id, f"Card {x}") for x in "abc"]


def test_move_into_empty_list_follows_input_order(bulk, cards, make_list, source):
    _, (a, b, c) = source
    target = make_list("Done")

    result = bulk.move_cards(BulkMoveCards(card_ids=[c.id, a.id, b.id], target_list_id=target.id))

    assert result.success is True
    assert result.updated == 3
    assert result.message == "3 card(s) moved successfully"
    moved = cards.get_cards_by_list_id(target.id)
    assert [(card.id, card.order) for card in moved] == [(c.id, 0), (a.id, 1), (b.id, 2)]


def test_move_appends_after_existing_cards(bulk, cards, make_list, make_card, source):
    _, (a, b, _) = source
    target = make_list("Done")
    make_card(target.id, "Already here")

    bulk.move_cards(BulkMoveCards(card_ids=[a.id, b.id], target_list_id=target.id))

    assert [card.order for card in cards.get_cards_by_list_id(target.id)] == [0, 1, 2]


def test_move_leaves_gap_in_source_list(bulk, cards, make_list, source):
    todo, (_, b, _) = source
    target = make_list("Done")

    bulk.move_cards(BulkMoveCards(card_ids=[b.id], target_list_id=target.id))

    assert [card.order for card in cards.get_cards_by_list_id(todo.id)] == [0, 2]


def test_move_logs_one_activity_per_card(bulk, make_list, source, count):
    _, (a, b, _) = source
    target = make_list("Done")

    bulk.move_cards(BulkMoveCards(card_ids=[a.id, b.id], target_list_id=target.id), user_id="user-9")

    assert count(CardActivity, card_id=a.id, action="moved") == 1
    assert count(CardActivity, card_id=b.id, action="moved", user_id="user-9") == 1


def test_move_with_unknown_card_rolls_back(bulk, cards, make_list, source, count):
    todo, (a, _, _) = source
    target = make_list("Done")

    with pytest.raises(IntegrityError):
        bulk.move_cards(BulkMoveCards(card_ids=[a.id, "no-such-card"], target_list_id=target.id))

    card = cards.get_card_by_id(a.id)
    assert (card.list_id, card.order) == (todo.id, 0)
    assert cards.get_cards_by_list_id(target.id) == []
    assert count(CardActivity, action="moved") == 0


def test_assign_users_is_idempotent(bulk, source, count):
    _, (a, _, _) = source
    payload = BulkAssignUsers(card_ids=[a.id], user_ids=["u1"])

    first = bulk.assign_users(payload)
    second = bulk.assign_users(payload)

    assert first.updated == second.updated == 1
    assert count(CardAssignee, card_id=a.id, user_id="u1") == 1


def test_assign_users_reports_attempted_pairs(bulk, source, count):
    _, (a, b, _) = source
    bulk.assign_users(BulkAssignUsers(card_ids=[a.id], user_ids=["u1"]))

    result = bulk.assign_users(BulkAssignUsers(card_ids=[a.id, b.id], user_ids=["u1", "u2", "u3"]))

    assert result.updated == 6
    assert result.message == "Users assigned to 2 card(s)"
    assert count(CardAssignee) == 6
    assert count(CardActivity, card_id=a.id, action="assignee_added") == 2


def test_assign_no_users_still_logs_per_card(bulk, source, count):
    _, (a, b, _) = source

    result = bulk.assign_users(BulkAssignUsers(card_ids=[a.id, b.id], user_ids=[]))

    assert (result.success, result.updated) == (True, 0)
    assert result.message == "Users assigned to 2 card(s)"
    assert count(CardAssignee) == 0
    assert count(CardActivity, card_id=a.id, action="assignee_added", details="Assigned 0 user(s)") == 1
    assert count(CardActivity, action="assignee_added") == 2


def test_add_no_labels_still_logs_per_card(bulk, source, count):
    _, (a, _, _) = source

    result = bulk.add_labels(BulkAddLabels(card_ids=[a.id], label_ids=[]))

    assert result.updated == 0
    assert result.message == "Labels added to 1 card(s)"
    assert count(CardActivity, card_id=a.id, action="label_added", details="Added 0 label(s)") == 1


def test_add_labels_is_idempotent(bulk, source, label_ids, count):
    _, (a, b, _) = source
    payload = BulkAddLabels(card_ids=[a.id, b.id], label_ids=label_ids)

    assert bulk.add_labels(payload).updated == 4
    assert bulk.add_labels(payload).updated == 4
    assert count(CardLabel) == 4
    assert count(CardActivity, card_id=b.id, action="label_added") == 2


def test_add_unknown_label_rolls_back(bulk, source, label_ids, count):
    _, (a, _, _) = source

    with pytest.raises(IntegrityError):
        bulk.add_labels(BulkAddLabels(card_ids=[a.id], label_ids=[label_ids[0], "no-such-label"]))

    assert count(CardLabel) == 0


def test_set_and_clear_due_date(bulk, cards, source, count):
    _, (a, b, _) = source
    due = datetime(2026, 11, 2, 9, 30, tzinfo=timezone.utc)

    result = bulk.set_due_date(BulkSetDueDate(card_ids=[a.id, b.id], due_date=due))

    assert result.updated == 2
    assert result.message == "Due date set on 2 card(s)"
    assert cards.get_card_by_id(a.id).due_date.replace(tzinfo=None) == due.replace(tzinfo=None)
    assert count(CardActivity, card_id=b.id, action="due_date_set") == 1

    cleared = bulk.set_due_date(BulkSetDueDate(card_ids=[a.id], due_date=None))

    assert cleared.message == "Due date cleared on 1 card(s)"
    assert cards.get_card_by_id(a.id).due_date is None
    assert cards.get_card_by_id(b.id).due_date is not None
    assert count(CardActivity, card_id=a.id, action="due_date_removed") == 1


def test_set_due_date_with_unknown_card_rolls_back(bulk, cards, source):
    _, (a, _, _) = source

    with pytest.raises(IntegrityError):
        bulk.set_due_date(
            BulkSetDueDate(card_ids=[a.id, "missing"], due_date=datetime(2026, 1, 1, tzinfo=timezone.utc))
        )

    assert cards.get_card_by_id(a.id).due_date is None


def test_archive_cards(bulk, cards, source, count):
    _, (a, b, c) = source

    result = bulk.archive_cards(BulkArchiveCards(card_ids=[a.id, c.id]))

    assert result.message == "2 card(s) archived successfully"
    assert [cards.get_card_by_id(x.id).status for x in (a, b, c)] == ["archived", None, "archived"]
    assert count(CardActivity, action="archived") == 2


def test_delete_cards_cascades(bulk, cards, source, add_row, label_ids, count):
    todo, (a, b, c) = source
    add_row(CardAssignee(card_id=a.id, user_id="u1"))
    add_row(CardLabel(card_id=a.id, label_id=label_ids[0]))
    add_row(ChecklistItem(card_id=a.id, title="Step one"))
    add_row(Comment(card_id=a.id, content="Done?"))
    add_row(Attachment(card_id=a.id, filename="spec.pdf", mime_type="application/pdf", file_size=2048, storage_path="/files/spec.pdf"))

    result = bulk.delete_cards(BulkDeleteCards(card_ids=[a.id]))

    assert result.updated == 1
    for model in (CardAssignee, CardLabel, ChecklistItem, Comment, Attachment, CardActivity):
        assert count(model, card_id=a.id) == 0
    assert count(Card, id=a.id) == 0
    # the remaining cards keep their positions
    assert [card.order for card in cards.get_cards_by_list_id(todo.id)] == [1, 2]


@pytest.mark.parametrize(
    "method, payload",
    [
        ("move_cards", BulkMoveCards(card_ids=[], target_list_id="any")),
        ("assign_users", BulkAssignUsers(card_ids=[], user_ids=["u1"])),
        ("add_labels", BulkAddLabels(card_ids=[], label_ids=["l1"])),
        ("set_due_date", BulkSetDueDate(card_ids=[], due_date=None)),
        ("archive_cards", BulkArchiveCards(card_ids=[])),
        ("delete_cards", BulkDeleteCards(card_ids=[])),
    ],
)
def test_empty_input_is_a_no_op(bulk, source, count, method, payload):
    activities_before = count(CardActivity)

    result = getattr(bulk, method)(payload)

    assert result.success is True
    assert result.updated == 0
    assert count(CardActivity) == activities_before
    assert count(Card) == 3


def test_insert_or_ignore_rejects_other_dialects():
    session = SimpleNamespace(get_bind=lambda: SimpleNamespace(dialect=SimpleNamespace(name="mysql")))

    with pytest.raises(UnsupportedDialectError) as excinfo:
        insert_or_ignore(session, CardAssignee, {"card_id": "c", "user_id": "u"}, ("card_id", "user_id"))

    assert isinstance(excinfo.value, SprintyError)
    assert excinfo.value.dialect == "mysql"
