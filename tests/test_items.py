import pytest
from zkvault.lib.items import (
    ALL_FOLDERS, VaultItem, available_folders, available_tags, filter_items, new_item_id,
)

def test_new_ids_are_unique():
    ids = {new_item_id() for _ in range(500)}
    assert len(ids) == 500 and all(len(i) == 21 for i in ids)

def test_create_defaults():
    item = VaultItem.create(username='me')
    assert item.title == 'New Item' and item.updated_at > 0
    with pytest.raises(KeyError):
        VaultItem.create(bogus=1)

def test_apply_bumps_updated_at():
    item = VaultItem.create(title='x')
    before = item.updated_at
    item.apply({'title': 'y'}); item.apply({'password': 'z'})
    assert item.title == 'y' and item.password == 'z'
    assert item.updated_at >= before + 2

def test_id_is_not_patchable():
    item = VaultItem.create()
    with pytest.raises(KeyError):
        item.apply({'id': 'other'})

def test_tags_dedupe_and_order_irrelevant():
    a = VaultItem(id='1', tags=['b', 'a', 'b', ' '], updated_at=5)
    b = VaultItem(id='1', tags=['a', 'b'], updated_at=5)
    assert a.tags == ['b', 'a'] and a == b

def test_wire_roundtrip_uses_camel_case():
    item = VaultItem(id='1', title='t', tags=['x'], folder='F', updated_at=42)
    raw = item.to_dict()
    assert raw['updatedAt'] == 42 and 'updated_at' not in raw
    assert VaultItem.from_dict(raw) == item

def test_from_dict_tolerates_missing_and_unknown_fields():
    item = VaultItem.from_dict({'id': 'x', 'title': None, 'extra': True, 'updatedAt': 7})
    assert item.title == '' and item.tags == [] and item.updated_at == 7
    with pytest.raises(ValueError):
        VaultItem.from_dict({'title': 'no id'})

def test_repr_hides_secrets():
    assert 'hunter2' not in repr(VaultItem(id='1', password='hunter2'))

def test_filter_tags_and_folders():
    items = [
        VaultItem(id='1', title='GitHub', tags=['dev'], folder='Work'),
        VaultItem(id='2', title='Bank', notes='savings', folder='Personal'),
        VaultItem(id='3', title='Mail', username='dev@example.com'),
    ]
    assert [i.id for i in filter_items(items, 'dev')] == ['1', '3']
    assert [i.id for i in filter_items(items, 'SAVINGS')] == ['2']
    assert [i.id for i in filter_items(items, folder='Work')] == ['1']
    assert available_tags(items) == ['dev']
    assert available_folders(items) == [ALL_FOLDERS, 'Personal', 'Work']
