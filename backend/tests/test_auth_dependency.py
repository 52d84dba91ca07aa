import unittest
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import MagicMock, patch
from uuid import uuid4

from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from visitrank.core.security import create_access_token, decode_access_token
from visitrank.db.session import get_db
from visitrank.deps.auth import get_current_user, user_id_from_credentials


def bearer(token: str, scheme: str = "Bearer") -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme=scheme, credentials=token)


def db_returning(user) -> MagicMock:
    db = MagicMock()
    db.query.return_value.filter.return_value.first.return_value = user
    return db


class TestTokens(unittest.TestCase):
    def test_round_trip_subject(self) -> None:
        user_id = uuid4()
        token = create_access_token(user_id)
        self.assertEqual(decode_access_token(token), str(user_id))

    def test_expired_or_tampered_token(self) -> None:
        expired = create_access_token(uuid4(), expires_delta=timedelta(minutes=-1))
        self.assertIsNone(decode_access_token(expired))
        self.assertIsNone(decode_access_token("not-a-jwt"))


class TestBearerCredentials(unittest.TestCase):
    def test_valid_token_yields_user_id(self) -> None:
        user_id = uuid4()
        self.assertEqual(user_id_from_credentials(bearer(create_access_token(user_id))), user_id)

    def test_missing_header_401(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            user_id_from_credentials(None)
        self.assertEqual(ctx.exception.status_code, 401)
        self.assertEqual(ctx.exception.headers["WWW-Authenticate"], "Bearer")

    def test_wrong_scheme_401(self) -> None:
        token = create_access_token(uuid4())
        with self.assertRaises(HTTPException) as ctx:
            user_id_from_credentials(bearer(token, scheme="Basic"))
        self.assertEqual(ctx.exception.status_code, 401)

    def test_non_uuid_subject_401(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            user_id_from_credentials(bearer(create_access_token("someone")))
        self.assertEqual(ctx.exception.status_code, 401)


class TestCurrentUser(unittest.TestCase):
    def test_active_user_resolved(self) -> None:
        user = SimpleNamespace(id=uuid4(), is_active=True)
        credentials = bearer(create_access_token(user.id))
        self.assertIs(get_current_user(credentials=credentials, db=db_returning(user)), user)

    def test_unknown_user_401(self) -> None:
        credentials = bearer(create_access_token(uuid4()))
        with self.assertRaises(HTTPException) as ctx:
            get_current_user(credentials=credentials, db=db_returning(None))
        self.assertEqual(ctx.exception.status_code, 401)

    def test_inactive_user_401(self) -> None:
        user = SimpleNamespace(id=uuid4(), is_active=False)
        credentials = bearer(create_access_token(user.id))
        with self.assertRaises(HTTPException) as ctx:
            get_current_user(credentials=credentials, db=db_returning(user))
        self.assertEqual(ctx.exception.detail, "Account is deactivated")


class TestGetDb(unittest.TestCase):
    def test_failed_request_rolls_back_and_closes(self) -> None:
        db = MagicMock()
        with patch("visitrank.db.session.SessionLocal", return_value=db):
            dependency = get_db()
            self.assertIs(next(dependency), db)
            with self.assertRaises(RuntimeError):
                dependency.throw(RuntimeError("handler failed"))
        db.rollback.assert_called_once()
        db.close.assert_called_once()

    def test_successful_request_only_closes(self) -> None:
        db = MagicMock()
        with patch("visitrank.db.session.SessionLocal", return_value=db):
            dependency = get_db()
            next(dependency)
            with self.assertRaises(StopIteration):
                next(dependency)
        db.rollback.assert_not_called()
        db.close.assert_called_once()
