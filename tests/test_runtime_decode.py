from __future__ import annotations

import json
import stat
from pathlib import Path

import pytest

from shpack.bundle.encoder import SourceEntry, encode_section
from shpack.bundle.manifest import sha256_bytes
from shpack.bundle.runtime import (
    MAGIC,
    MAX_SUPPORTED_FORMAT,
    TRAILER,
    CorruptBundleError,
    InvalidEntryNameError,
    UnsupportedFormatError,
    extract_entries,
    load_image,
    read_bundle,
)
from shpack.bundle.stub import assemble_bundle


ENTRIES = [
    SourceEntry("main.sh", b"#!/bin/sh\nexec \"$SHPACK_SCRIPT_DIR/lib/helper.sh\" \"$@\"\n", 0o755),
    SourceEntry("lib/helper.sh", b"#!/bin/sh\necho helper\n", 0o750),
    SourceEntry("share/data.bin", bytes(range(256)), 0o600),
]


def _split(section: bytes) -> tuple[bytes, bytes, bytes]:
    _, manifest_len, payload_len, _ = TRAILER.unpack(section[-TRAILER.size :])
    return section[:manifest_len], section[manifest_len : manifest_len + payload_len], section[-TRAILER.size :]


def _reassemble(manifest_obj: dict, payload: bytes, *, trailer_version: int | None = None) -> bytes:
    manifest_bytes = json.dumps(manifest_obj, sort_keys=True).encode("utf-8")
    version = manifest_obj["format_version"] if trailer_version is None else trailer_version
    return manifest_bytes + payload + TRAILER.pack(version, len(manifest_bytes), len(payload), MAGIC)


def test_extract_decode_encode_round_trip(tmp_path: Path):
    image = load_image(assemble_bundle(encode_section(ENTRIES)))

    written = extract_entries(image, tmp_path)

    assert [p.relative_to(tmp_path).as_posix() for p in written] == [e.name for e in ENTRIES]
    for entry in ENTRIES:
        p = tmp_path / entry.name
        assert p.read_bytes() == entry.data
        assert stat.S_IMODE(p.stat().st_mode) == entry.mode


def test_load_image_reports_stub_length():
    section = encode_section(ENTRIES)
    image = load_image(b"#!/bin/sh\nstub\n" + section)
    assert image.stub_length == len(b"#!/bin/sh\nstub\n")
    assert load_image(section).stub_length == 0


def test_every_payload_byte_flip_is_detected():
    section = encode_section(ENTRIES)
    manifest_bytes, payload, trailer = _split(section)

    for i in range(len(payload)):
        tampered = bytearray(payload)
        tampered[i] ^= 0x01
        with pytest.raises(CorruptBundleError, match=r"checksum mismatch"):
            load_image(manifest_bytes + bytes(tampered) + trailer)


def test_checksum_mismatch_names_the_damaged_entry():
    manifest_bytes, payload, trailer = _split(encode_section(ENTRIES))
    tampered = bytearray(payload)
    tampered[-1] ^= 0xFF  # last byte belongs to share/data.bin
    with pytest.raises(CorruptBundleError, match=r"entry 'share/data\.bin'"):
        load_image(manifest_bytes + bytes(tampered) + trailer)


def test_verify_false_skips_checksum():
    manifest_bytes, payload, trailer = _split(encode_section(ENTRIES))
    tampered = bytearray(payload)
    tampered[0] ^= 0x01
    image = load_image(manifest_bytes + bytes(tampered) + trailer, verify=False)
    assert image.manifest.entry_point == "main.sh"


def test_trailer_version_above_maximum_is_unsupported():
    manifest_bytes, payload, _ = _split(encode_section(ENTRIES))
    trailer = TRAILER.pack(MAX_SUPPORTED_FORMAT + 1, len(manifest_bytes), len(payload), MAGIC)
    with pytest.raises(UnsupportedFormatError, match=r"trailer: format version 2 is not supported"):
        load_image(manifest_bytes + payload + trailer)


def test_manifest_version_above_maximum_is_unsupported():
    manifest_bytes, payload, _ = _split(encode_section(ENTRIES))
    obj = json.loads(manifest_bytes)
    obj["format_version"] = MAX_SUPPORTED_FORMAT + 1
    data = _reassemble(obj, payload, trailer_version=MAX_SUPPORTED_FORMAT)
    with pytest.raises(UnsupportedFormatError, match=r"manifest: format version"):
        load_image(data)


def test_unsupported_version_is_reported_before_checksum():
    manifest_bytes, payload, _ = _split(encode_section(ENTRIES))
    trailer = TRAILER.pack(MAX_SUPPORTED_FORMAT + 1, len(manifest_bytes), len(payload), MAGIC)
    with pytest.raises(UnsupportedFormatError):
        load_image(manifest_bytes + b"\x00" * len(payload) + trailer)


def test_not_a_bundle_is_corrupt():
    with pytest.raises(CorruptBundleError, match=r"trailer not found"):
        load_image(b"#!/bin/sh\necho plain script\n" + b"x" * 64)
    with pytest.raises(CorruptBundleError, match=r"too small"):
        load_image(b"tiny")


def test_truncated_bundle_is_corrupt():
    section = encode_section(ENTRIES)
    with pytest.raises(CorruptBundleError):
        load_image(section[20:])


def test_invalid_manifest_json_is_corrupt():
    payload = b"abc"
    bad = b"{not json"
    data = bad + payload + TRAILER.pack(1, len(bad), len(payload), MAGIC)
    with pytest.raises(CorruptBundleError, match=r"not valid JSON"):
        load_image(data)


def test_overlapping_entries_are_corrupt():
    manifest_bytes, payload, _ = _split(encode_section(ENTRIES))
    obj = json.loads(manifest_bytes)
    obj["entries"][1]["offset"] = 0
    with pytest.raises(CorruptBundleError, match=r"overlaps"):
        load_image(_reassemble(obj, payload))


def test_entry_past_payload_end_is_corrupt():
    manifest_bytes, payload, _ = _split(encode_section(ENTRIES))
    obj = json.loads(manifest_bytes)
    obj["entries"][-1]["size"] += 1
    with pytest.raises(CorruptBundleError, match=r"extends past the payload"):
        load_image(_reassemble(obj, payload))


def test_missing_entry_point_is_corrupt():
    manifest_bytes, payload, _ = _split(encode_section(ENTRIES))
    obj = json.loads(manifest_bytes)
    obj["entry_point"] = "nope.sh"
    with pytest.raises(CorruptBundleError, match=r"entry point 'nope\.sh'"):
        load_image(_reassemble(obj, payload))


def test_traversal_name_in_crafted_manifest_is_rejected():
    payload = b"#!/bin/sh\n"
    obj = {
        "format_version": 1,
        "name": "evil",
        "version": "1",
        "entry_point": "../evil",
        "checksum": sha256_bytes(payload),
        "entries": [{"name": "../evil", "mode": 0o755, "offset": 0, "size": len(payload), "sha256": sha256_bytes(payload)}],
    }
    with pytest.raises(InvalidEntryNameError):
        load_image(_reassemble(obj, payload))


def test_extract_rejects_traversal_even_without_load_checks(tmp_path: Path):
    image = load_image(encode_section(ENTRIES))
    evil_entry = image.manifest.entries[0]._replace(name="../escaped")
    evil = image._replace(manifest=image.manifest._replace(entries=(evil_entry,)))

    dest = tmp_path / "stage"
    dest.mkdir()
    with pytest.raises(InvalidEntryNameError):
        extract_entries(evil, dest)
    assert not (tmp_path / "escaped").exists()


def test_read_bundle_missing_file(tmp_path: Path):
    from shpack.bundle.runtime import ExtractionError

    with pytest.raises(ExtractionError, match=r"cannot read bundle"):
        read_bundle(tmp_path / "missing")
