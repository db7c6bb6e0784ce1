"""
Unit tests for password hashing and the token service
"""
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from config import Settings
from errors import AuthenticationError, ConfigurationError, SecretNotAvailableError
from main import create_app
from security import PasswordHasher, TokenService

SECRET = 'unit-test-signing-key'


class TestPasswordHashing:

    def test_hash_is_not_plaintext(self, hasher):
        hashed = hasher.hash('testpassword123')

        assert hashed != 'testpassword123'
        assert hashed.startswith('$2b$')

    def test_hash_is_salted(self, hasher):
        assert hasher.hash('testpassword123') != hasher.hash('testpassword123')

    def test_verify_roundtrip(self, hasher):
        hashed = hasher.hash('testpassword123')

        assert hasher.verify('testpassword123', hashed) is True
        assert hasher.verify('testpassword124', hashed) is False
        assert hasher.verify('', hashed) is False

    def test_work_factor_is_applied(self):
        hashed = PasswordHasher(rounds=5).hash('testpassword123')

        assert hashed.split('$')[2] == '05'

    def test_verify_user_requires_loaded_secret(self, hasher):
        with pytest.raises(SecretNotAvailableError):
            hasher.verify_user('testpassword123', {'email': 'a@school.com'})

    def test_verify_user_against_record(self, hasher):
        user = {'email': 'a@school.com', 'password': hasher.hash('testpassword123')}

        assert hasher.verify_user('testpassword123', user) is True
        assert hasher.verify_user('nope', user) is False


class TestTokenService:

    def test_issue_and_verify(self):
        tokens = TokenService(SECRET)

        assert tokens.verify(tokens.issue('65a000000000000000000001')) == '65a000000000000000000001'

    def test_expiry_is_thirty_days(self):
        tokens = TokenService(SECRET)
        now = datetime.now(timezone.utc).replace(microsecond=0)

        claims = jwt.get_unverified_claims(tokens.issue('abc', now=now))

        assert claims['exp'] - claims['iat'] == int(timedelta(days=30).total_seconds())
        assert set(claims) == {'sub', 'iat', 'exp'}

    def test_expired_token_rejected(self):
        tokens = TokenService(SECRET)
        issued = datetime.now(timezone.utc) - timedelta(days=30, minutes=1)

        with pytest.raises(AuthenticationError) as exc:
            tokens.verify(tokens.issue('abc', now=issued))
        assert exc.value.message == 'Invalid token'

    def test_token_within_window_accepted(self):
        tokens = TokenService(SECRET)
        issued = datetime.now(timezone.utc) - timedelta(days=29)

        assert tokens.verify(tokens.issue('abc', now=issued)) == 'abc'

    def test_wrong_signature_rejected(self):
        token = TokenService('another-key').issue('abc')

        with pytest.raises(AuthenticationError):
            TokenService(SECRET).verify(token)

    def test_tampered_token_rejected(self):
        tokens = TokenService(SECRET)
        header, payload, signature = tokens.issue('abc').split('.')
        forged = jwt.encode({'sub': 'someone-else'}, 'guess', algorithm='HS256').split('.')[1]

        with pytest.raises(AuthenticationError):
            tokens.verify('.'.join([header, forged, signature]))

    @pytest.mark.parametrize('token', ['', 'garbage', 'a.b.c'])
    def test_malformed_token_rejected(self, token):
        with pytest.raises(AuthenticationError):
            TokenService(SECRET).verify(token)

    def test_token_without_subject_rejected(self):
        token = jwt.encode(
            {'exp': datetime.now(timezone.utc) + timedelta(days=1)}, SECRET, algorithm='HS256'
        )

        with pytest.raises(AuthenticationError):
            TokenService(SECRET).verify(token)

    @pytest.mark.parametrize('key', [None, '', '   '])
    def test_refuses_to_run_without_signing_key(self, key):
        with pytest.raises(ConfigurationError):
            TokenService(key)


def test_app_startup_fails_without_signing_key():
    settings = Settings(_env_file=None, JWT_SECRET_KEY=None)

    with pytest.raises(ConfigurationError):
        create_app(settings)
