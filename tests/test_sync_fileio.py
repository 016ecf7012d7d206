import os

import pytest

from sync_fileio import closing_logged, makedirs_logged, remove_logged, remove_tree_logged


class _Resource:
    def __init__(self, fail=False):
        self.fail = fail
        self.closed = False

    def close(self):
        self.closed = True
        if self.fail:
            raise OSError('close failed')


def test_closing_logged_closes_on_success():
    resource = _Resource()
    with closing_logged(resource, 'ctx') as got:
        assert got is resource
    assert resource.closed


def test_closing_logged_reports_close_failure():
    reports = []
    with closing_logged(_Resource(fail=True), 'closing reader', report=reports.append):
        pass
    assert reports == ['closing reader: close failed']


def test_closing_logged_keeps_body_error():
    reports = []
    resource = _Resource(fail=True)
    with pytest.raises(ValueError):
        with closing_logged(resource, 'ctx', report=reports.append):
            raise ValueError('body')
    assert resource.closed
    assert reports == ['ctx: close failed']


def test_closing_logged_accepts_none():
    with closing_logged(None, 'ctx') as got:
        assert got is None


def test_remove_logged(tmp_path):
    path = tmp_path / 'f'
    path.write_bytes(b'')
    reports = []
    remove_logged(str(path), report=reports.append)
    remove_logged(str(path), report=reports.append)
    assert not path.exists()
    assert reports == []


def test_remove_logged_reports_other_errors(tmp_path):
    reports = []
    remove_logged(str(tmp_path), report=reports.append)
    assert len(reports) == 1
    assert str(tmp_path) in reports[0]


def test_remove_tree_and_makedirs(tmp_path):
    target = tmp_path / 'a' / 'b'
    assert makedirs_logged(str(target)) is True
    remove_tree_logged(str(tmp_path / 'a'))
    assert not os.path.exists(tmp_path / 'a')


def test_makedirs_logged_failure(tmp_path):
    blocker = tmp_path / 'file'
    blocker.write_bytes(b'')
    reports = []
    assert makedirs_logged(str(blocker / 'sub'), report=reports.append) is False
    assert len(reports) == 1
