from bookscan.services.scan_history import ScanHistory

ISBN = "9784000000000"


def test_repeat_inside_window_is_suppressed() -> None:
    history = ScanHistory(debounce_window=1.5)

    assert history.accept(ISBN, 0.0) is True
    assert history.accept(ISBN, 0.5) is False
    assert history.accept(ISBN, 1.49) is False


def test_repeat_after_window_is_accepted() -> None:
    history = ScanHistory(debounce_window=1.5)

    assert history.accept(ISBN, 0.0) is True
    assert history.accept(ISBN, 1.5) is True
    assert history.accept(ISBN, 2.0) is False


def test_suppressed_event_does_not_extend_window() -> None:
    history = ScanHistory(debounce_window=1.5)
    history.accept(ISBN, 0.0)
    history.accept(ISBN, 1.0)

    # Maßgeblich ist der letzte *angenommene* Scan bei t=0
    assert history.accept(ISBN, 1.6) is True


def test_debounce_is_per_identifier() -> None:
    history = ScanHistory(debounce_window=1.5)

    assert history.accept(ISBN, 0.0) is True
    assert history.accept("9790000000001", 0.1) is True


def test_expired_timestamps_are_swept() -> None:
    history = ScanHistory(debounce_window=1.5, retention_seconds=10.0)
    history.accept("9784000000001", 0.0)
    history.accept("9784000000002", 5.0)
    assert history.tracked_count == 2

    history.accept("9784000000003", 12.0)

    assert history.tracked_count == 2
    # Nach dem Sweep verhält sich ein alter Identifier wie ein neuer
    assert history.accept("9784000000001", 12.5) is True


def test_classify_reports_prior_state() -> None:
    history = ScanHistory(seen=["9790000000001"])

    assert history.classify(ISBN) is False
    assert history.classify(ISBN) is True
    assert history.classify("9790000000001") is True
    assert history.seen_count == 2


def test_mark_seen_and_forget() -> None:
    history = ScanHistory()

    history.mark_seen(ISBN)
    assert history.is_seen(ISBN) is True

    history.forget(ISBN)
    history.forget(ISBN)
    assert history.is_seen(ISBN) is False
    assert history.classify(ISBN) is False
