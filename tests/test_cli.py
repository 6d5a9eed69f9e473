import json

import pytest

from auction_indexer.__main__ import main, query
from auction_indexer.config import DEFAULT_REGISTRAR_ADDRESS, load_abi, load_config
from auction_indexer.entities import BidStatus
from auction_indexer.events import REGISTRAR_ABI, AuctionStarted, BidRevealed
from auction_indexer.projector import AuctionProjector
from auction_indexer.store import EntityStore

from conftest import ALICE, DEED_1, LABEL_FOO, FakeGateway, ctx


@pytest.fixture
def populated_db(tmp_path):
    path = str(tmp_path / "registrar.db")
    store = EntityStore(path)
    projector = AuctionProjector(store, FakeGateway({LABEL_FOO: [DEED_1]}))
    projector.apply(AuctionStarted(LABEL_FOO, 100, ctx(1)))
    projector.apply(BidRevealed(LABEL_FOO, ALICE, 50, BidStatus.WINNING, ctx(2)))
    store.close()

    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"db_path": path}))
    return str(config_path)


class TestConfig:
    def test_defaults_without_file(self):
        cfg = load_config(None)
        assert cfg["registrar_address"] == DEFAULT_REGISTRAR_ADDRESS
        assert cfg["confirmations"] == 0
        assert cfg["rpc_http"] is None

    def test_file_overrides_and_coerces(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"batch_size": "250", "rpc_http": "http://localhost:8545"}))
        cfg = load_config(str(path))
        assert cfg["batch_size"] == 250
        assert cfg["rpc_http"] == "http://localhost:8545"

    def test_rejects_bad_batch_size(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"batch_size": 0}))
        with pytest.raises(ValueError):
            load_config(str(path))

    def test_abi_override_from_artifact(self, tmp_path):
        (tmp_path / "nested").mkdir()
        artifact = {"abi": REGISTRAR_ABI[:1]}
        (tmp_path / "nested" / "AuctionRegistrar.json").write_text(json.dumps(artifact))
        assert load_abi("AuctionRegistrar", str(tmp_path)) == REGISTRAR_ABI[:1]
        assert load_abi("Deed", str(tmp_path))[0]["name"] == "OwnerChanged"


def test_query_name_accepts_uppercase_hash(populated_db):
    store = EntityStore(load_config(populated_db)["db_path"])
    result = query(store, "name", LABEL_FOO.upper().replace("0X", "0x"))
    store.close()
    assert result["state"] == "AUCTION"
    assert result["deed"] == DEED_1


def test_stats_command_prints_json(populated_db, capsys):
    main(["--config", populated_db, "stats"])
    out = json.loads(capsys.readouterr().out)
    assert out["num_auctioned"] == 1
    assert out["current_value"] == 50
    assert out["owned_deed_value"] == 50


def test_account_command_lists_deeds(populated_db, capsys):
    main(["--config", populated_db, "account", ALICE])
    out = json.loads(capsys.readouterr().out)
    assert out["id"] == ALICE
    assert out["deeds"] == [{"id": DEED_1, "value": 50, "owner": ALICE}]


def test_missing_deed_exits_non_zero(populated_db):
    with pytest.raises(SystemExit) as excinfo:
        main(["--config", populated_db, "deed", "0x" + "99" * 20])
    assert excinfo.value.code == 1


def test_malformed_name_hash_exits_non_zero(populated_db, capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["--config", populated_db, "name", "0xabc"])
    assert excinfo.value.code == 1
    assert "Invalid name argument 0xabc" in capsys.readouterr().err
