"""Tests for not-found signature matching."""

import pytest

from loadmaster_sync.api.errors import LoadMasterError, TransportError
from loadmaster_sync.drift import DriftDetector, NotFoundSignature


class TestNotFoundSignature:
    """Tests for individual signatures."""

    def test_message_only(self):
        """Test a message signature ignores the code."""
        signature = NotFoundSignature(message="Rule not found")

        assert signature.matches(LoadMasterError(422, "Rule not found"))
        assert signature.matches(LoadMasterError(400, "Rule not found"))
        assert not signature.matches(LoadMasterError(422, "Rule already exists"))

    def test_code_only(self):
        """Test a code signature ignores the message."""
        signature = NotFoundSignature(code=404)

        assert signature.matches(LoadMasterError(404, "File not found"))
        assert not signature.matches(LoadMasterError(422, "File not found"))

    def test_code_and_message(self):
        """Test both fields must match when both are given."""
        signature = NotFoundSignature(message="Unknown VS", code=422)

        assert signature.matches(LoadMasterError(422, "Unknown VS"))
        assert not signature.matches(LoadMasterError(400, "Unknown VS"))
        assert not signature.matches(LoadMasterError(422, "Invalid VS"))

    def test_empty_signature_rejected(self):
        with pytest.raises(ValueError):
            NotFoundSignature()


class TestDriftDetector:
    """Tests for signature tables."""

    def test_any_signature_matches(self):
        """Test a table with several signatures."""
        detector = DriftDetector([
            NotFoundSignature(message="Unknown VS"),
            NotFoundSignature(message="Unknown RS"),
        ])

        assert detector.is_absent(LoadMasterError(422, "Unknown VS"))
        assert detector.is_absent(LoadMasterError(422, "Unknown RS"))
        assert not detector.is_absent(LoadMasterError(401, "Authorization required"))

    def test_non_remote_errors_never_absent(self):
        """Test only appliance rejections are considered."""
        detector = DriftDetector([NotFoundSignature(message="Unknown VS")])

        assert not detector.is_absent(TransportError("Unknown VS"))
        assert not detector.is_absent(ValueError("Unknown VS"))

    def test_empty_table(self):
        assert not DriftDetector([]).is_absent(LoadMasterError(404, "Not found"))
