"""
Unit tests for ProjectionService (Firestore live-monitoring projection).
"""

from unittest.mock import MagicMock, patch

from beatwatch.services.projection import ProjectionService

BEAT = {
    "beat_id": "2f1c7b3e-0000-4000-8000-000000000001",
    "name": "Poblacion Beat 1",
    "status": "in_progress",
    "center": {"lat": 13.4119, "lng": 121.1805},
    "radius_m": 500.0,
    "assigned_personnel": ["a", "b"],
    "acceptance_progress": {"accepted": 2, "total": 2},
    "violation_count": 1,
    "deleted_at": None,
}

VIOLATION = {
    "violation_id": "2f1c7b3e-0000-4000-8000-0000000000aa",
    "beat_id": BEAT["beat_id"],
    "status": "pending",
    "distance_from_center_m": 612.3,
}


def _run_inline(func, *args, **kwargs):
    func(*args, **kwargs)
    return True


class TestProjectionDisabled:
    """Projection is a silent no-op when Firestore is off."""

    @patch("beatwatch.services.projection.firestore_enabled", return_value=False)
    def test_update_beat_state_noop(self, _enabled):
        service = ProjectionService()
        assert service.update_beat_state(BEAT) is False
        assert service.publish_violation(VIOLATION, beat=BEAT) is False


class TestProjectionEnabled:
    """Document writes against a mocked Firestore client."""

    def _service(self):
        service = ProjectionService()
        service._enabled = True
        service._client = MagicMock()
        service._run_async = _run_inline
        return service

    def test_update_beat_state_merges_document(self):
        service = self._service()

        assert service.update_beat_state(BEAT) is True

        service._client.collection.assert_called_with("beats")
        ref = service._client.collection.return_value.document.return_value
        data, = ref.set.call_args.args
        assert ref.set.call_args.kwargs == {"merge": True}
        assert data["status"] == "in_progress"
        assert data["violation_count"] == 1
        assert data["deleted"] is False

    def test_publish_violation_writes_subdocument(self):
        service = self._service()

        assert service.publish_violation(VIOLATION) is True

        beat_ref = service._client.collection.return_value.document.return_value
        beat_ref.collection.assert_called_once_with("violations")
        violation_ref = beat_ref.collection.return_value.document.return_value
        data, = violation_ref.set.call_args.args
        assert data["status"] == "pending"
        assert "updated_at" in data

    def test_write_failure_does_not_raise(self):
        service = ProjectionService()
        service._enabled = True
        service._client = MagicMock()
        ref = service._client.collection.return_value.document.return_value
        ref.set.side_effect = RuntimeError("unavailable")

        with patch("beatwatch.services.projection.threading.Thread") as mock_thread:
            assert service.update_beat_state(BEAT) is True
            target = mock_thread.call_args.kwargs["target"]

        target()  # wrapper logs and swallows the error
        ref.set.assert_called_once()
