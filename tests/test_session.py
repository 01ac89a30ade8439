from contesso.db.enums import SessionEventKind, UserRole
from contesso.bot.services.session import SessionService
from contesso.bot.services.user import UserService
from factories import make_user


def test_sign_in_grants_admin_to_configured_usernames(run, fake_db, settings):
    boss = run(fake_db.create_user(make_user(role=UserRole.UNREGISTERED, tg_username="boss")))
    alice = run(fake_db.create_user(make_user(role=UserRole.UNREGISTERED, tg_id=2)))

    assert run(SessionService().sign_in(boss)).role == UserRole.ADMIN
    assert run(SessionService().sign_in(alice)).role == UserRole.USER


def test_events_are_published_and_unsubscribe_works(run, fake_db):
    user = run(fake_db.create_user(make_user(role=UserRole.UNREGISTERED)))
    sessions = SessionService()
    events = []

    async def handler(event):
        events.append(event)

    unsubscribe = sessions.subscribe(handler)
    signed_in = run(sessions.sign_in(user))
    run(sessions.sign_out(signed_in))
    unsubscribe()
    run(sessions.sign_in(user))

    assert [e.kind for e in events] == [SessionEventKind.SIGNED_IN, SessionEventKind.SIGNED_OUT]
    assert events[0].session_key == user.tg_id
    assert events[1].user is None


def test_failing_handler_does_not_block_others(run, fake_db):
    user = run(fake_db.create_user(make_user(role=UserRole.UNREGISTERED)))
    sessions = SessionService()
    delivered = []

    async def broken(event):
        raise RuntimeError("boom")

    async def healthy(event):
        delivered.append(event.kind)

    with sessions.subscription(broken), sessions.subscription(healthy):
        run(sessions.sign_in(user))
    assert delivered == [SessionEventKind.SIGNED_IN]
    assert sessions._handlers == []


def test_get_user_autocreates_and_tracks_username(run, fake_db):
    users = UserService()
    created = run(users.get_user(555, tg_username="old_name", full_name="Carol", autocreate=True))
    assert created.role == UserRole.UNREGISTERED
    assert run(users.get_user(555)) == created

    renamed = run(users.get_user(555, tg_username="@new_name"))
    assert renamed.tg_username == "new_name"
    assert run(users.get_user(999)) is None


def test_close_drops_leftover_subscribers(run, fake_db):
    sessions = SessionService()

    async def handler(event):
        pass

    sessions.subscribe(handler)
    assert sessions.close() == 1
    assert sessions._handlers == []
    assert sessions.close() == 0
