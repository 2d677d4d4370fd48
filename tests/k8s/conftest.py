import pytest

from trustee_operator._cogs.structs.references import CONFIGMAPS


@pytest.fixture(autouse=True)
def _enforced_api_server(fake_context):
    pass


@pytest.fixture()
def resource():
    return CONFIGMAPS


@pytest.fixture()
def status():
    """ A factory of the Kubernetes ``Status`` payloads, as served on errors. """
    def factory(code, reason='Reason', message='Message'):
        return {'apiVersion': 'v1', 'kind': 'Status', 'code': code,
                'status': 'Failure', 'reason': reason, 'message': message}
    return factory
