from playback.session import SessionContext


def test_clear_resets_session_flags() -> None:
    session = SessionContext()
    session.preload_enabled = False
    session.mark_install_prompt_shown()
    assert not session.should_offer_install()

    session.clear()
    assert session.preload_enabled is True
    assert session.should_offer_install()


def test_permanent_dismissal_survives_logout() -> None:
    store = {}
    session = SessionContext(store=store)
    session.dismiss_install_prompt(permanently=True)
    session.clear()

    assert session.install_prompt_dismissed
    assert not session.should_offer_install()
    assert not SessionContext(store=store).should_offer_install()


def test_plain_dismissal_only_lasts_for_the_session() -> None:
    session = SessionContext()
    session.dismiss_install_prompt()
    assert not session.should_offer_install()
    session.clear()
    assert session.should_offer_install()
