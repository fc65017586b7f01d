"""
Tests for /process request validation.
"""

import math

import pytest

from cutoff.core.errors import ValidationError
from cutoff.schemas.process import parse_process_request


class TestProcessRequest:
    """Shape and range of {fileName, filterFrequency}."""

    @pytest.mark.parametrize("freq", [20, 20.0, 440, 5000, 19999.5, 20000])
    def test_accepts_cutoff_in_range(self, freq):
        req = parse_process_request({"fileName": "test-audio.mp3", "filterFrequency": freq})
        assert req.asset_name == "test-audio.mp3"
        assert req.cutoff_frequency == float(freq)

    def test_rejects_too_high(self):
        with pytest.raises(ValidationError, match="cannot exceed 20000"):
            parse_process_request({"fileName": "test-audio.mp3", "filterFrequency": 25000})

    def test_rejects_too_low(self):
        with pytest.raises(ValidationError, match="at least 20"):
            parse_process_request({"fileName": "test-audio.mp3", "filterFrequency": 19.99})

    def test_rejects_nan(self):
        with pytest.raises(ValidationError):
            parse_process_request({"fileName": "a.mp3", "filterFrequency": math.nan})

    def test_rejects_string_frequency(self):
        """Numbers only; "5000" is not coerced."""
        with pytest.raises(ValidationError):
            parse_process_request({"fileName": "a.mp3", "filterFrequency": "5000"})

    def test_rejects_empty_name(self):
        with pytest.raises(ValidationError, match="File name is required"):
            parse_process_request({"fileName": "", "filterFrequency": 5000})

    @pytest.mark.parametrize("name", ["../etc/passwd", "a/b.mp3", "..", "a\\b.mp3"])
    def test_rejects_paths(self, name):
        with pytest.raises(ValidationError):
            parse_process_request({"fileName": name, "filterFrequency": 5000})

    def test_rejects_missing_fields(self):
        with pytest.raises(ValidationError, match="fileName"):
            parse_process_request({"filterFrequency": 5000})

    def test_rejects_non_object(self):
        with pytest.raises(ValidationError):
            parse_process_request(["test-audio.mp3", 5000])
