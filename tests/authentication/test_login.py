import logging

import pytest
import yaml

from trustee_operator._cogs.structs.credentials import LoginError
from trustee_operator._core.intents.piggybacking import get_kubeconfig_paths, login, \
                                                        login_with_kubeconfig, \
                                                        login_with_service_account

logger = logging.getLogger(__name__)

KUBECONFIG = {
    'current-context': 'ctx',
    'contexts': [
        {'name': 'ctx', 'context': {'cluster': 'clstr', 'user': 'usr', 'namespace': 'ns'}},
        {'name': 'other', 'context': {'cluster': 'other'}},
    ],
    'clusters': [
        {'name': 'clstr', 'cluster': {'server': 'https://hostname:1234/',
                                      'certificate-authority': '/ca.crt',
                                      'insecure-skip-tls-verify': True}},
    ],
    'users': [
        {'name': 'usr', 'user': {'token': 'tkn', 'client-certificate': '/cert.pem',
                                 'client-key': '/key.pem'}},
    ],
}


@pytest.fixture(autouse=True)
def no_kubeconfig_env(monkeypatch, tmp_path):
    monkeypatch.delenv('KUBECONFIG', raising=False)
    monkeypatch.setenv('HOME', str(tmp_path / 'home'))  # no ~/.kube/config


@pytest.fixture()
def kubeconfig(tmp_path, monkeypatch):
    def factory(*configs):
        paths = []
        for idx, config in enumerate(configs):
            path = tmp_path / f'config{idx}'
            path.write_text(yaml.safe_dump(config))
            paths.append(str(path))
        monkeypatch.setenv('KUBECONFIG', ':'.join(paths))
        return paths
    return factory


@pytest.fixture()
def sa_dir(tmp_path):
    path = tmp_path / 'serviceaccount'
    path.mkdir()
    return path


def test_no_kubeconfig_paths():
    assert get_kubeconfig_paths() == []
    assert login_with_kubeconfig() is None


def test_kubeconfig_paths_from_the_environment(monkeypatch):
    monkeypatch.setenv('KUBECONFIG', '/a:/b::')
    assert get_kubeconfig_paths() == ['/a', '/b']


def test_kubeconfig_of_the_current_context(kubeconfig):
    kubeconfig(KUBECONFIG)
    info = login_with_kubeconfig()
    assert info is not None
    assert info.server == 'https://hostname:1234/'
    assert info.ca_path == '/ca.crt'
    assert info.insecure is True
    assert info.token == 'tkn'
    assert info.certificate_path == '/cert.pem'
    assert info.private_key_path == '/key.pem'
    assert info.default_namespace == 'ns'


def test_kubeconfigs_are_merged_with_the_first_one_winning(kubeconfig):
    first = {'current-context': 'ctx',
             'clusters': [{'name': 'clstr', 'cluster': {'server': 'https://first/'}}]}
    kubeconfig(first, KUBECONFIG)
    info = login_with_kubeconfig()
    assert info.server == 'https://first/'
    assert info.token == 'tkn'


def test_kubeconfig_without_current_context(kubeconfig):
    kubeconfig(dict(KUBECONFIG, **{'current-context': None}))
    with pytest.raises(LoginError, match=r"Current context is not set"):
        login_with_kubeconfig()


def test_kubeconfig_with_unknown_cluster(kubeconfig):
    kubeconfig(dict(KUBECONFIG, **{'current-context': 'other'}))
    with pytest.raises(LoginError, match=r"incomplete"):
        login_with_kubeconfig()


def test_kubeconfig_absent_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        login_with_kubeconfig([str(tmp_path / 'absent')])


def test_service_account_absent(sa_dir):
    assert login_with_service_account(str(sa_dir)) is None


def test_service_account_with_everything(sa_dir):
    (sa_dir / 'token').write_text('tkn\n')
    (sa_dir / 'namespace').write_text('ns\n')
    (sa_dir / 'ca.crt').write_text('...')
    info = login_with_service_account(str(sa_dir))
    assert info.server == 'https://kubernetes.default.svc'
    assert info.token == 'tkn'
    assert info.default_namespace == 'ns'
    assert info.ca_path == str(sa_dir / 'ca.crt')


def test_service_account_with_token_only(sa_dir):
    (sa_dir / 'token').write_text('tkn')
    info = login_with_service_account(str(sa_dir))
    assert info.token == 'tkn'
    assert info.default_namespace is None
    assert info.ca_path is None


def test_login_prefers_the_service_account(sa_dir, kubeconfig, monkeypatch):
    (sa_dir / 'token').write_text('sa-token')
    monkeypatch.setattr(login_with_service_account, '__defaults__', (str(sa_dir),))
    kubeconfig(KUBECONFIG)
    info = login(logger=logger)
    assert info.token == 'sa-token'


def test_login_falls_back_to_kubeconfig(sa_dir, kubeconfig, monkeypatch):
    monkeypatch.setattr(login_with_service_account, '__defaults__', (str(sa_dir),))
    kubeconfig(KUBECONFIG)
    info = login(logger=logger)
    assert info.token == 'tkn'


def test_login_fails_without_credentials(sa_dir, monkeypatch):
    monkeypatch.setattr(login_with_service_account, '__defaults__', (str(sa_dir),))
    with pytest.raises(LoginError):
        login(logger=logger)
