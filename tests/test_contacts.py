"""Unit tests for the contact book."""

import pytest

from mailbag.contacts import ContactsWorker, ContactStore
from mailbag.errors import ContactNotFoundError
from mailbag.types import Contact


@pytest.fixture
def contacts(tmp_path):
    worker = ContactsWorker(tmp_path / "contacts.db")
    yield worker
    worker.close()


@pytest.mark.asyncio
async def test_add_then_list(contacts):
    added = await contacts.add_contact("Jane", "jane@example.com")

    listed = await contacts.list_contacts()

    assert listed == [added]
    assert added.id


@pytest.mark.asyncio
async def test_list_preserves_insertion_order(contacts):
    first = await contacts.add_contact("A", "a@example.com")
    second = await contacts.add_contact("B", "b@example.com")

    assert [c.id for c in await contacts.list_contacts()] == [first.id, second.id]


@pytest.mark.asyncio
async def test_update_contact(contacts):
    added = await contacts.add_contact("Jane", "jane@example.com")

    updated = await contacts.update_contact(Contact(id=added.id, name="Jane Doe", email="jd@example.com"))

    assert updated.name == "Jane Doe"
    assert await contacts.list_contacts() == [updated]


@pytest.mark.asyncio
async def test_update_unknown_contact(contacts):
    with pytest.raises(ContactNotFoundError):
        await contacts.update_contact(Contact(id="missing", name="X", email="x@example.com"))


@pytest.mark.asyncio
async def test_delete_contact(contacts):
    added = await contacts.add_contact("Jane", "jane@example.com")

    await contacts.delete_contact(added.id)

    assert await contacts.list_contacts() == []
    with pytest.raises(ContactNotFoundError):
        await contacts.delete_contact(added.id)


def test_store_persists_across_instances(tmp_path):
    path = tmp_path / "nested" / "contacts.db"
    added = ContactStore(path).add_contact("Jane", "jane@example.com")

    assert ContactStore(path).list_contacts() == [added]


def test_contact_json_uses_underscore_id():
    assert Contact(id="abc", name="Jane", email="j@example.com").to_dict() == {
        "_id": "abc",
        "name": "Jane",
        "email": "j@example.com",
    }
