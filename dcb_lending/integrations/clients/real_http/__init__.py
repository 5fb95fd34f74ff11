"""
Real HTTP integration clients.

- lending_api: RequestExecutor used for every lending gateway call
- confluence: release-note page lookup on the wiki

Both return NormalizedResponse-shaped data (see integrations/contracts).
Tests swap the transport via httpx.MockTransport instead of mocking clients.
"""
