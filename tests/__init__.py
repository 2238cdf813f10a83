"""
Browser MCP Tests

Run all tests:
    pytest tests/ -v

Run specific test file:
    pytest tests/test_serialization.py -v

Skip integration tests (no Chrome required):
    pytest tests/ -v -m "not integration"
"""
