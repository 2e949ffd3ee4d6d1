"""Tests covering workflow output formatting."""

from __future__ import annotations

from pathlib import Path

import pytest
from shade_test_helpers import decode_output_file

from shade_common.coordinates import Coordinate
from shade_common.errors import ShadeError
from shade_common.github_output import write_github_output
from shade_common.shading import ShadeResult, prepare_output_data


def _result(tmp_path: Path) -> ShadeResult:
    return ShadeResult(
        archive=tmp_path / "build" / "libs" / "demo-1.0.jar",
        checksum="abc123",
        entries=3,
        relocated_classes=1,
        inputs={},
        merged_service_files=[],
        duplicates=[],
        shaded_dependencies=[
            Coordinate.parse("org.example:foo:1.0"),
            Coordinate.parse("org.ow2.asm:asm:9.4"),
        ],
    )


class TestPrepareOutputData:
    """Tests for :func:`prepare_output_data`."""

    def test_describes_archive(self, tmp_path: Path) -> None:
        """Outputs should expose the archive, its digest and the publication."""

        values = prepare_output_data(_result(tmp_path), "pluginMaven")

        assert values["archive_path"].endswith(
            "build/libs/demo-1.0.jar"
        ), "Expected the archive path output"
        assert values["archive_sha256"] == "abc123"
        assert values["publication"] == "pluginMaven"
        assert values["shaded_dependencies"] == [
            "org.example:foo:1.0",
            "org.ow2.asm:asm:9.4",
        ]


class TestWriteGithubOutput:
    """Tests for :func:`write_github_output`."""

    def test_writes_multiline_values(self, tmp_path: Path) -> None:
        """Sequences are joined by newlines inside a heredoc block."""

        output_file = tmp_path / "github" / "output"

        write_github_output(
            output_file,
            {"publication": "pluginMaven", "shaded_dependencies": ["a:b:1", "c:d:2"]},
        )

        values = decode_output_file(output_file)
        assert values == {
            "publication": "pluginMaven",
            "shaded_dependencies": "a:b:1\nc:d:2",
        }

    def test_appends_to_existing_file(self, tmp_path: Path) -> None:
        """Existing outputs from earlier steps are preserved."""

        output_file = tmp_path / "output"
        output_file.write_text("earlier<<EOF_1\nvalue\nEOF_1\n", encoding="utf-8")

        write_github_output(output_file, {"archive_sha256": "abc123"})

        values = decode_output_file(output_file)
        assert values == {"earlier": "value", "archive_sha256": "abc123"}

    def test_rejects_invalid_output_names(self, tmp_path: Path) -> None:
        """Keys that would corrupt the record format are refused up front."""

        output_file = tmp_path / "output"

        with pytest.raises(ShadeError, match="Invalid workflow output name"):
            write_github_output(
                output_file, {"archive_sha256": "abc123", "bad<<key": "x"}
            )
        assert not output_file.exists(), "nothing is written on failure"
