import pytest

from infra.db import criar_engine
from infra.snapshots import SnapshotStore


@pytest.fixture
def store(tmp_path):
    engine = criar_engine(f"sqlite+pysqlite:///{tmp_path / 'conciliacao.db'}")
    s = SnapshotStore(engine)
    s.criar_tabelas()
    yield s
    engine.dispose()
