"""
Tests Module: Unit and Integration Tests

Test Coverage:
    - Signing (header and query signatures, version 4) against known vectors
    - Request building, validation and stream measurement
    - Response parsing, faults and checksum verification
    - Retry policy and listing pagination
    - Object storage and message queue connections against an in-process
      fake service (tests/fake_service.py)
    - Factory lifecycle, configuration and structured logging
"""
