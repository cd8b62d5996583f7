import re
from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from docshare.db.base import Base
from docshare.models import AccessAction, AccessLogEntry, OtpChallenge, ShareAccess
from docshare.models.otp_challenge import build_pending_key
from docshare.services import otp_service
from docshare.services.errors import ErrorKind, ServiceError
from docshare.services.otp_service import OtpService, has_verified_window
from docshare.services.share_service import ShareManager

from .conftest import make_document, make_user


@pytest.fixture()
def shares(db, notifier, settings, clock):
    return ShareManager(db, notifier, settings=settings, clock=clock)


@pytest.fixture()
def otp(db, notifier, settings, clock):
    return OtpService(db, notifier, settings=settings, clock=clock)


@pytest.fixture()
def private_share(shares, document, owner, alice):
    return shares.create(document.document_id, owner.user_id, recipient_email=alice.email).share


def last_code(notifier) -> str:
    return re.search(r"one-time code is: (\d+)", notifier.sent[-1].body).group(1)


def pending(db, share_id):
    return (
        db.query(OtpChallenge)
        .filter(OtpChallenge.share_id == share_id, OtpChallenge.pending_key.isnot(None))
        .all()
    )


def test_send_issues_code_and_notifies(otp, db, private_share, alice, notifier, clock, settings):
    issued = otp.send(private_share.share_id, "ALICE@example.com")

    assert not isinstance(issued, ServiceError)
    assert issued.delivered is True
    assert issued.expires_at == clock() + timedelta(minutes=settings.otp_valid_minutes)
    assert notifier.sent[-1].subject == "Your OTP code"
    assert notifier.sent[-1].to_email == alice.email
    code = last_code(notifier)
    assert len(code) == settings.otp_digits
    assert db.query(AccessLogEntry).filter(AccessLogEntry.action == AccessAction.OTP_REQUEST).count() == 1


def test_resend_supersedes_previous_code(otp, db, private_share, alice, notifier, clock):
    otp.send(private_share.share_id, alice.email)
    first_code = last_code(notifier)
    clock.advance(seconds=5)
    otp.send(private_share.share_id, alice.email)
    second_code = last_code(notifier)

    live = pending(db, private_share.share_id)
    assert len(live) == 1
    assert live[0].pending_key == build_pending_key(alice.user_id, private_share.share_id)
    older = db.query(OtpChallenge).filter(OtpChallenge.otp_id != live[0].otp_id).one()
    assert older.is_expired(clock())

    if first_code != second_code:
        assert otp.verify(private_share.share_id, alice.email, first_code).code == "InvalidOrExpiredCode"
    assert not isinstance(otp.verify(private_share.share_id, alice.email, second_code), ServiceError)


def test_verify_opens_window_until_expiry(otp, db, private_share, alice, notifier, clock, settings):
    otp.send(private_share.share_id, alice.email)
    code = last_code(notifier)

    assert otp.verify(private_share.share_id, alice.email, "000000" if code != "000000" else "111111").code == (
        "InvalidOrExpiredCode"
    )
    assert otp.status(private_share.share_id, alice.email) is False

    verified = otp.verify(private_share.share_id, alice.email, code)
    assert verified.is_verified is True
    assert verified.pending_key is None
    assert otp.status(private_share.share_id, alice.email) is True

    clock.advance(minutes=settings.otp_valid_minutes)
    assert otp.status(private_share.share_id, alice.email) is False
    assert has_verified_window(db, private_share.share_id, alice.user_id, clock()) is False


def test_verified_code_cannot_be_reused(otp, private_share, alice, notifier):
    otp.send(private_share.share_id, alice.email)
    code = last_code(notifier)
    otp.verify(private_share.share_id, alice.email, code)

    assert otp.verify(private_share.share_id, alice.email, code).code == "InvalidOrExpiredCode"


def test_expired_code_is_rejected(otp, private_share, alice, notifier, clock, settings):
    otp.send(private_share.share_id, alice.email)
    code = last_code(notifier)
    clock.advance(minutes=settings.otp_valid_minutes)

    assert otp.verify(private_share.share_id, alice.email, code).code == "InvalidOrExpiredCode"


def test_send_rejects_inapplicable_shares(otp, shares, document, owner, alice, clock):
    public = shares.create(document.document_id, owner.user_id).share
    assert otp.send(public.share_id, alice.email).code == "NotApplicable"

    assert otp.send("missing", alice.email).kind == ErrorKind.NOT_FOUND

    expiring = shares.create(
        document.document_id, owner.user_id, recipient_email=alice.email, expiry=clock() + timedelta(minutes=1)
    ).share
    clock.advance(minutes=1)
    expired = otp.send(expiring.share_id, alice.email)
    assert expired.kind == ErrorKind.STATE_CONFLICT
    assert expired.code == "Expired"


def test_send_rejects_revoked_share(otp, shares, private_share, owner, alice):
    shares.revoke(private_share.share_id, owner.user_id)
    assert otp.send(private_share.share_id, alice.email).code == "Revoked"


def test_send_rejects_unknown_and_wrong_recipients(otp, db, private_share):
    unknown = otp.send(private_share.share_id, "stranger@example.com")
    assert unknown.kind == ErrorKind.FORBIDDEN
    assert unknown.code == "RecipientUnregistered"

    make_user(db, "carol@example.com")
    wrong = otp.send(private_share.share_id, "carol@example.com")
    assert wrong.code == "WrongRecipient"
    assert db.query(OtpChallenge).count() == 0


def test_code_for_other_share_does_not_verify(otp, shares, db, document, owner, alice, notifier):
    bob = make_user(db, "bob@example.com")
    carol = make_user(db, "carol@example.com")
    bobs = shares.create(document.document_id, owner.user_id, recipient_email=bob.email).share
    other_doc = make_document(db, owner, "other.pdf")
    carols = shares.create(other_doc.document_id, owner.user_id, recipient_email=carol.email).share

    otp.send(carols.share_id, carol.email)
    carol_code = last_code(notifier)

    result = otp.verify(bobs.share_id, carol.email, carol_code)
    assert result.kind == ErrorKind.FORBIDDEN
    assert result.code == "WrongRecipient"


def test_pending_email_recipient_must_register(otp, shares, db, document, owner):
    share = shares.create(
        document.document_id, owner.user_id, recipient_email="dave@example.com", requested_access=ShareAccess.PRIVATE
    ).share

    assert otp.send(share.share_id, "dave@example.com").code == "RecipientUnregistered"

    make_user(db, "Dave@example.com")
    assert not isinstance(otp.send(share.share_id, "dave@example.com"), ServiceError)


def test_undelivered_code_still_issued(db, settings, clock, private_share, alice):
    from docshare.services.notifier import RecordingNotifier

    service = OtpService(db, RecordingNotifier(fail=True), settings=settings, clock=clock)
    issued = service.send(private_share.share_id, alice.email)

    assert issued.delivered is False
    assert len(pending(db, private_share.share_id)) == 1


def test_concurrent_send_keeps_single_pending_code(tmp_path, monkeypatch, notifier, settings, clock):
    engine = create_engine(f"sqlite:///{tmp_path / 'otp-race.db'}", future=True)
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    db = Session()
    rival = Session()
    owner = make_user(db, "owner@example.com")
    alice = make_user(db, "alice@example.com")
    document = make_document(db, owner)
    share = ShareManager(db, notifier, settings=settings, clock=clock).create(
        document.document_id, owner.user_id, recipient_email=alice.email
    ).share

    real_code = otp_service.generate_otp_code
    raced = []

    def code_after_rival_commits():
        if not raced:
            rival.add(
                OtpChallenge(
                    user_id=alice.user_id,
                    share_id=share.share_id,
                    otp_code="999999",
                    expiry_time=clock() + timedelta(minutes=10),
                    created_at=clock(),
                    pending_key=build_pending_key(alice.user_id, share.share_id),
                )
            )
            rival.commit()
            raced.append(True)
        return real_code()

    monkeypatch.setattr(otp_service, "generate_otp_code", code_after_rival_commits)
    try:
        issued = OtpService(db, notifier, settings=settings, clock=clock).send(share.share_id, alice.email)

        assert not isinstance(issued, ServiceError)
        live = pending(db, share.share_id)
        assert [c.otp_id for c in live] == [issued.challenge_id]
        assert db.query(OtpChallenge).count() == 2
    finally:
        db.close()
        rival.close()
        engine.dispose()


def test_status_only_reports_for_bound_recipient_of_live_private_share(otp, shares, db, document, owner, alice, clock):
    carol = make_user(db, "carol@example.com")
    private = shares.create(document.document_id, owner.user_id, recipient_email=alice.email).share
    public = shares.create(document.document_id, owner.user_id).share
    for user, share in [(alice, private), (carol, private), (alice, public)]:
        db.add(
            OtpChallenge(
                user_id=user.user_id,
                share_id=share.share_id,
                otp_code="123456",
                expiry_time=clock() + timedelta(minutes=10),
                is_verified=True,
                created_at=clock(),
            )
        )
    db.commit()

    assert otp.status(private.share_id, alice.email) is True
    assert otp.status(private.share_id, carol.email) is False
    assert otp.status(public.share_id, alice.email) is False
    assert otp.status("missing", alice.email) is False

    shares.revoke(private.share_id, owner.user_id)
    assert otp.status(private.share_id, alice.email) is False
