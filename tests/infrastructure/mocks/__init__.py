from .collaborator_mocks import START_TIME, DroppingDocumentFeed, FakeClock, FlakyBlobStore, RecordingDocumentFeed

__all__ = ["START_TIME", "DroppingDocumentFeed", "FakeClock", "FlakyBlobStore", "RecordingDocumentFeed"]
