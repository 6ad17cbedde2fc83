"""Loading and validating the transfer engine configuration."""

from pathlib import Path

import pytest
import yaml

from transfer_config import get_active_config
from transfer_config.loader import compute_checksum, parse_config
from transfer_config.schema import DocumentNumbering, TransferConfig


class TestDefaults:

    def test_bundled_defaults(self):
        config = get_active_config()
        assert config.config_id == "sto-default"
        assert config.settlement_term_days == 30
        assert config.numbering.order_prefix == "STO"
        assert config.numbering.invoice_prefix == "INV"
        assert config.numbering.sequence_width == 4
        assert config.default_page_size == 20
        assert config.max_page_size == 200
        assert len(config.checksum) == 64

    def test_config_trace_logged(self, captured_logs):
        config = get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "TRANSFER_CONFIG_TRACE"]
        assert traces
        assert traces[-1]["checksum"] == config.checksum
        assert traces[-1]["settlement_term_days"] == 30


class TestCustomFile:

    def _write(self, tmp_path: Path, data: dict) -> Path:
        path = tmp_path / "transfer.yaml"
        path.write_text(yaml.safe_dump(data))
        return path

    def test_overrides(self, tmp_path):
        path = self._write(tmp_path, {
            "config_id": "north-region",
            "version": 3,
            "settlement": {"term_days": 45},
            "numbering": {"order_prefix": "TRF"},
        })
        config = get_active_config(path)
        assert config.config_id == "north-region"
        assert config.version == 3
        assert config.settlement_term_days == 45
        assert config.numbering.order_prefix == "TRF"
        assert config.numbering.shipment_prefix == "SHP"

    def test_empty_file_uses_schema_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        config = get_active_config(path)
        assert config.settlement_term_days == 30

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "missing.yaml")

    def test_checksum_tracks_content(self):
        a = parse_config({"settlement": {"term_days": 30}})
        b = parse_config({"settlement": {"term_days": 31}})
        assert a.checksum != b.checksum
        assert a.checksum == compute_checksum({"settlement": {"term_days": 30}})


class TestValidation:

    def test_non_positive_term(self):
        with pytest.raises(ValueError):
            TransferConfig(settlement_term_days=0)

    def test_page_sizes(self):
        with pytest.raises(ValueError):
            TransferConfig(default_page_size=50, max_page_size=10)

    def test_duplicate_prefixes(self):
        with pytest.raises(ValueError):
            DocumentNumbering(order_prefix="X", shipment_prefix="X")

    @pytest.mark.parametrize("prefix", ["", "ST-O", "ST:O"])
    def test_bad_prefix(self, prefix):
        with pytest.raises(ValueError):
            DocumentNumbering(order_prefix=prefix)

    def test_sequence_width_bounds(self):
        with pytest.raises(ValueError):
            DocumentNumbering(sequence_width=0)
