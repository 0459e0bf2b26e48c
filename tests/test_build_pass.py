from pathlib import Path

import pytest

from tests.helpers.passes import make_pass, read_archive
from tests.helpers.pki import P12_PASSWORD
from tools import build_pass
from tools.verify_pass import verify_archive


@pytest.fixture
def signing_files(tmp_path: Path, p12_bytes, issuer) -> dict[str, Path]:
    certificate = tmp_path / "signer.p12"
    certificate.write_bytes(p12_bytes)
    wwdr = tmp_path / "wwdr.pem"
    wwdr.write_bytes(issuer.pem)
    document = tmp_path / "pass.json"
    document.write_bytes(make_pass().to_json_bytes())
    template = tmp_path / "template"
    template.mkdir()
    (template / "icon.png").write_bytes(b"\x89PNG")
    return {"certificate": certificate, "wwdr": wwdr, "pass": document, "template": template}


def _argv(files: dict[str, Path], out: Path, password: str, work_root: Path) -> list[str]:
    return [
        "--pass", str(files["pass"]),
        "--template", str(files["template"]),
        "--certificate", str(files["certificate"]),
        "--password", password,
        "--wwdr", str(files["wwdr"]),
        "--out", str(out),
        "--work-root", str(work_root),
    ]


def test_main_builds_archive(signing_files, issuer, tmp_path: Path):
    out = tmp_path / "dist" / "member.pkpass"
    work_root = tmp_path / "work"

    assert build_pass.main(_argv(signing_files, out, P12_PASSWORD, work_root)) == 0

    data = out.read_bytes()
    assert sorted(read_archive(data)) == ["icon.png", "manifest.json", "pass.json", "signature"]
    verify_archive(data, issuer.certificate)
    assert list(work_root.iterdir()) == []


def test_main_reports_wrong_password(signing_files, tmp_path: Path, caplog):
    out = tmp_path / "member.pkpass"
    exit_code = build_pass.main(_argv(signing_files, out, "wrong", tmp_path / "work"))
    assert exit_code == 1
    assert not out.exists()
    assert "E_CREDENTIAL_INVALID_PASSWORD" in caplog.text


def test_main_reports_missing_pass_document(signing_files, tmp_path: Path):
    signing_files["pass"] = tmp_path / "absent.json"
    assert build_pass.main(_argv(signing_files, tmp_path / "x.pkpass", P12_PASSWORD, tmp_path / "work")) == 1


def test_parse_args_requires_signing_material(tmp_path: Path):
    with pytest.raises(SystemExit):
        build_pass.parse_args(["--pass", str(tmp_path / "pass.json"), "--out", str(tmp_path / "x.pkpass")])
