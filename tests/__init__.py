# fieldcrypt Test Suite
"""
Test suite including:
- Unit tests (codec, key exchange, key derivation, field encryption)
- Session state machine tests
- Integration tests (device round trips, CLI)
- Security tests (invalid inputs, no key material in logs)

Run with: pytest
Coverage: coverage run -m pytest && coverage report
"""
