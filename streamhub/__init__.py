"""streamhub: live stream ingest supervisor with a status API."""
