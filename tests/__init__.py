"""
Regulatory Truth Test Suite
===========================

Test organization:
- tests/services/regulatory_truth/   - Service tests (no external dependencies)

Run tests:
    pytest                                          # All tests
    pytest tests/services/regulatory_truth -k parser
    pytest --cov=services --cov=shared              # With coverage
"""
