import pytest

from trustee_operator._cogs.clients.errors import APIConflictError, APINotFoundError
from trustee_operator._cogs.structs.references import CONFIGMAPS, DEPLOYMENTS
from trustee_operator.testing import MemoryObjectStore, StoreCall, merge_patch


def make_body(name='obj', **metadata):
    return {'metadata': dict({'namespace': 'ns', 'name': name}, **metadata), 'data': {'a': '1'}}


@pytest.mark.parametrize('target, patch, expected', [
    ({'a': 1}, {'b': 2}, {'a': 1, 'b': 2}),
    ({'a': 1}, {'a': None}, {}),
    ({'a': {'x': 1, 'y': 2}}, {'a': {'y': None, 'z': 3}}, {'a': {'x': 1, 'z': 3}}),
    ({'a': [1, 2]}, {'a': [3]}, {'a': [3]}),
    ({'a': 1}, {'a': {'b': 2}}, {'a': {'b': 2}}),
])
def test_merge_patch(target, patch, expected):
    assert merge_patch(target, patch) == expected


def test_merge_patch_does_not_modify_the_target():
    target = {'a': {'x': 1}}
    merge_patch(target, {'a': {'x': 2}})
    assert target == {'a': {'x': 1}}


def test_put_assigns_identities_and_is_not_recorded():
    store = MemoryObjectStore()
    stored = store.put(CONFIGMAPS, make_body())
    assert stored['metadata']['uid']
    assert stored['metadata']['resourceVersion']
    assert stored['kind'] == 'ConfigMap'
    assert store.calls == []


async def test_read_of_absent_objects():
    store = MemoryObjectStore()
    assert await store.read(resource=CONFIGMAPS, namespace='ns', name='obj') is None
    assert store.calls == [StoreCall(verb='read', resource=CONFIGMAPS, namespace='ns', name='obj')]


async def test_read_returns_copies():
    store = MemoryObjectStore([(CONFIGMAPS, make_body())])
    body = await store.read(resource=CONFIGMAPS, namespace='ns', name='obj')
    body['data']['a'] = 'changed'
    assert store.get(CONFIGMAPS, 'ns', 'obj')['data']['a'] == '1'


async def test_create_conflicts_with_existing_objects():
    store = MemoryObjectStore([(CONFIGMAPS, make_body())])
    with pytest.raises(APIConflictError):
        await store.create(resource=CONFIGMAPS, namespace='ns', body=make_body())


async def test_replace_of_absent_objects():
    store = MemoryObjectStore()
    with pytest.raises(APINotFoundError):
        await store.replace(resource=CONFIGMAPS, namespace='ns', name='obj', body=make_body())


async def test_replace_with_an_outdated_version():
    store = MemoryObjectStore()
    stored = store.put(CONFIGMAPS, make_body())
    store.put(CONFIGMAPS, stored)  # a newer version by someone else.
    with pytest.raises(APIConflictError):
        await store.replace(resource=CONFIGMAPS, namespace='ns', name='obj', body=stored)


async def test_replace_keeps_the_uid_and_the_finalizers():
    store = MemoryObjectStore()
    stored = store.put(CONFIGMAPS, make_body(finalizers=['fin']))
    replaced = await store.replace(resource=CONFIGMAPS, namespace='ns', name='obj',
                                   body=make_body(uid='another'))
    assert replaced['metadata']['uid'] == stored['metadata']['uid']
    assert replaced['metadata']['finalizers'] == ['fin']
    assert replaced['metadata']['resourceVersion'] != stored['metadata']['resourceVersion']


async def test_patch_merges_and_checks_the_version():
    store = MemoryObjectStore()
    stored = store.put(CONFIGMAPS, make_body())
    patched = await store.patch(resource=CONFIGMAPS, namespace='ns', name='obj',
                                patch={'data': {'b': '2'}})
    assert patched['data'] == {'a': '1', 'b': '2'}

    outdated = {'metadata': {'resourceVersion': stored['metadata']['resourceVersion']}}
    with pytest.raises(APIConflictError):
        await store.patch(resource=CONFIGMAPS, namespace='ns', name='obj', patch=outdated)


async def test_deletion_without_finalizers_is_immediate():
    store = MemoryObjectStore([(DEPLOYMENTS, make_body())])
    await store.delete(resource=DEPLOYMENTS, namespace='ns', name='obj')
    assert store.get(DEPLOYMENTS, 'ns', 'obj') is None


async def test_deletion_with_finalizers_is_postponed_until_they_are_removed():
    store = MemoryObjectStore([(DEPLOYMENTS, make_body(finalizers=['fin']))])
    await store.delete(resource=DEPLOYMENTS, namespace='ns', name='obj')
    body = store.get(DEPLOYMENTS, 'ns', 'obj')
    assert body['metadata']['deletionTimestamp']

    await store.patch(resource=DEPLOYMENTS, namespace='ns', name='obj',
                      patch={'metadata': {'finalizers': []}})
    assert store.get(DEPLOYMENTS, 'ns', 'obj') is None


async def test_deletion_of_absent_objects():
    store = MemoryObjectStore()
    with pytest.raises(APINotFoundError):
        await store.delete(resource=DEPLOYMENTS, namespace='ns', name='obj')


async def test_verbs_are_filtered_by_resource():
    store = MemoryObjectStore()
    await store.read(resource=CONFIGMAPS, namespace='ns', name='obj')
    await store.read(resource=DEPLOYMENTS, namespace='ns', name='obj')
    await store.create(resource=DEPLOYMENTS, namespace='ns', body=make_body())
    assert store.verbs() == ['read', 'read', 'create']
    assert store.verbs(DEPLOYMENTS) == ['read', 'create']
