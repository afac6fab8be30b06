import pytest


@pytest.fixture(autouse=True)
def _plain_http_in_tests(settings):
    # Keep the test client on http://testserver with session auth working
    settings.SECURE_SSL_REDIRECT = False
    settings.SESSION_COOKIE_SECURE = False
    settings.CSRF_COOKIE_SECURE = False
    settings.SECURE_HSTS_SECONDS = 0
