"""Tests for the typer command-line interface."""

from __future__ import annotations

import json
import logging
from unittest.mock import AsyncMock

import pytest
from typer.testing import CliRunner

from medextract import cli
from medextract.schemas.extraction import MedicationsList

runner = CliRunner()


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    package_logger = logging.getLogger("medextract")
    for handler in list(package_logger.handlers):
        if getattr(handler, "_medextract_handler", False):
            package_logger.removeHandler(handler)
            handler.close()
    package_logger.setLevel(logging.NOTSET)


def _write(path, text: str):
    path.write_text(text, encoding="utf-8")
    return path


class TestLocalCommands:
    def test_simple_measurements(self, tmp_path):
        src = _write(tmp_path / "in.csv", "Id;T\n1;FEV1 65,5%\n2;sin datos\n")
        out = tmp_path / "out.csv"

        result = runner.invoke(cli.app, ["simple-measurements", str(src), str(out), "--no-progress"])

        assert result.exit_code == 0, result.output
        assert "2 row(s) read, 1 row(s) written" in result.output
        assert out.read_text(encoding="utf-8") == "Id;T;FEV1 (%)\n1;FEV1 65,5%;65,5\n"

    def test_english_culture(self, tmp_path):
        src = _write(tmp_path / "in.csv", "Id,T\n1,FEV1 65.5%\n")
        out = tmp_path / "out.csv"

        result = runner.invoke(
            cli.app,
            ["simple-measurements", str(src), str(out), "--culture", "en-US", "--no-progress", "-H", "FEV1"],
        )

        assert result.exit_code == 0, result.output
        assert out.read_text(encoding="utf-8") == "Id,T,FEV1\n1,FEV1 65.5%,65.5\n"

    def test_group(self, tmp_path):
        src = _write(tmp_path / "in.csv", "Id;NewName\n1;Salbutamol+Budesonida\n")
        grouping = tmp_path / "groups.json"
        grouping.write_text(json.dumps({"SABA": ["Salbutamol"], "ICS": ["Budesonida"]}), encoding="utf-8")
        out = tmp_path / "out.csv"

        result = runner.invoke(
            cli.app,
            ["group", str(src), str(out), "--grouping", str(grouping), "--overwrite", "--no-progress"],
        )

        assert result.exit_code == 0, result.output
        assert out.read_text(encoding="utf-8") == "Id;NewName\n1;SABA+ICS\n"

    def test_sample(self, tmp_path):
        src = _write(tmp_path / "in.csv", "Id\n" + "".join(f"{i}\n" for i in range(10)))
        out = tmp_path / "out.csv"

        result = runner.invoke(cli.app, ["sample", str(src), str(out), "--size", "3", "--no-progress"])

        assert result.exit_code == 0, result.output
        assert len(out.read_text(encoding="utf-8").splitlines()) == 4

    def test_validate(self, tmp_path):
        src = _write(tmp_path / "in.csv", "Numero;T;Medication\n7;Toma paracetamol;Paracetamol\n")
        out = tmp_path / "out.csv"

        result = runner.invoke(cli.app, ["validate", str(src), str(out)])

        assert result.exit_code == 0, result.output
        assert out.read_text(encoding="utf-8").splitlines()[1] == "7;Toma paracetamol;Paracetamol;5;11;paracetamol;TP;"

    def test_validate_interactive(self, tmp_path):
        src = _write(tmp_path / "in.csv", "Numero;T;Medication\n7;Toma paracetamol;Paracetamol\n")
        out = tmp_path / "out.csv"

        result = runner.invoke(cli.app, ["validate", str(src), str(out), "--interactive"], input="fp\n")

        assert result.exit_code == 0, result.output
        assert out.read_text(encoding="utf-8").splitlines()[1].endswith(";FP;")

    def test_convert_encoding(self, tmp_path):
        src = tmp_path / "in.csv"
        src.write_bytes("Id;T\n1;Broncodilatación\n".encode("latin-1"))
        out = tmp_path / "out.csv"

        result = runner.invoke(cli.app, ["convert-encoding", str(src), str(out)])

        assert result.exit_code == 0, result.output
        assert out.read_text(encoding="utf-8") == "Id;T\n1;Broncodilatación\n"


class TestErrors:
    def test_missing_target_column(self, tmp_path):
        src = _write(tmp_path / "in.csv", "Id;Texto\n1;FEV1 65%\n")

        result = runner.invoke(
            cli.app, ["simple-measurements", str(src), str(tmp_path / "out.csv"), "--no-progress"],
        )

        assert result.exit_code == 1
        assert "Column 'T' not found" in result.output

    def test_invalid_culture(self, tmp_path):
        src = _write(tmp_path / "in.csv", "Id;T\n")

        result = runner.invoke(
            cli.app, ["simple-measurements", str(src), str(tmp_path / "out.csv"), "--culture", "xx-YY"],
        )

        assert result.exit_code == 2
        assert "Invalid configuration" in result.output

    def test_missing_input(self, tmp_path):
        result = runner.invoke(cli.app, ["sample", str(tmp_path / "nope.csv"), str(tmp_path / "out.csv")])
        assert result.exit_code != 0


class TestMedicationsCommand:
    def test_uses_extraction_client(self, tmp_path, monkeypatch):
        src = _write(tmp_path / "in.csv", "Id;T\n1;Paracetamol e ibuprofeno\n")
        out = tmp_path / "out.csv"
        configs = []

        class FakeClient:
            def __init__(self, api_config):
                configs.append(api_config)
                self.extract = AsyncMock(return_value=MedicationsList(Medicamentos=["Paracetamol", "Ibuprofeno"]))

        monkeypatch.setattr(cli, "ExtractionClient", FakeClient)
        monkeypatch.setattr(cli, "load_dotenv", lambda: None)
        monkeypatch.delenv("MEDEXTRACT_MODEL", raising=False)

        result = runner.invoke(
            cli.app,
            ["medications", str(src), str(out), "--model", "mistral", "--no-retry-invalid", "--no-progress"],
        )

        assert result.exit_code == 0, result.output
        assert configs[0].model == "mistral"
        assert configs[0].invalid_response_delays == ()
        assert out.read_text(encoding="utf-8").splitlines()[1:] == [
            "1;Paracetamol e ibuprofeno;Ibuprofeno",
            "1;Paracetamol e ibuprofeno;Paracetamol",
        ]
