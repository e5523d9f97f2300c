from datetime import timedelta

import pytest

from trust_safety.services.risk_scoring import RiskCode, RiskScanner, assess_text_risk, scan_message_risk


def test_clean_text_has_no_signals():
    risk = assess_text_risk("Hi, I can start the plumbing work on Monday morning.")
    assert risk.total_score == 0
    assert risk.signals == ()


def test_contact_info_email_and_phone_single_signal():
    risk = assess_text_risk("Contact me at chris@x.com or call 415-555-1212")
    assert [s.code for s in risk.signals] == [RiskCode.CONTACT_INFO]
    assert risk.total_score == 55
    assert risk.signals[0].detail == "email,phone"


def test_phone_only_scores_35():
    risk = assess_text_risk("call me at 555-222-1111")
    assert risk.total_score == 35
    assert risk.signals[0].detail == "phone"


def test_short_numeric_ranges_are_not_phones():
    assert assess_text_risk("I can do it in 10-15 days for 200-300").total_score == 0


def test_keywords_case_and_whitespace_insensitive():
    risk = assess_text_risk("Pay   with  WESTERN\nUnion please")
    assert risk.has_code(RiskCode.BANNED_KEYWORD)
    assert risk.signals[0].detail == "western union"
    assert risk.total_score == 50


def test_overlapping_phrases_fire_independently():
    risk = assess_text_risk("venmo me the deposit")
    details = [s.detail for s in risk.signals]
    assert details == ["venmo", "venmo me"]
    assert risk.total_score == 40


def test_total_equals_sum_of_signals_and_is_deterministic():
    text = "telegram me or use crypto, email bob@mail.com"
    first = assess_text_risk(text)
    second = assess_text_risk(text)
    assert first == second
    assert first.total_score == sum(s.score for s in first.signals)
    # ключевые фразы идут раньше контактов
    assert first.signals[-1].code is RiskCode.CONTACT_INFO


def test_empty_text():
    assert assess_text_risk("").total_score == 0


@pytest.mark.asyncio
async def test_repeated_message_requires_two_prior_copies(store, now):
    scanner = RiskScanner(store)
    text = "Please check my profile and reviews before deciding"

    await store.record_message(7, 3, text, created_at=now - timedelta(minutes=2))
    risk = await scanner.assess_repeated_message_risk(7, 3, text, now=now)
    assert not risk.has_code(RiskCode.REPEATED_MESSAGE)

    await store.record_message(7, 3, text, created_at=now - timedelta(minutes=1))
    risk = await scanner.assess_repeated_message_risk(7, 3, text, now=now)
    assert risk.has_code(RiskCode.REPEATED_MESSAGE)
    assert risk.total_score == 25
    assert risk.signals[0].detail == "3 repeats in 10m"

    await store.record_message(7, 3, text, created_at=now - timedelta(seconds=30))
    risk = await scanner.assess_repeated_message_risk(7, 3, text, now=now)
    assert risk.total_score == 35


@pytest.mark.asyncio
async def test_repeated_message_ignores_old_and_short_texts(store, now):
    scanner = RiskScanner(store)
    for minutes in (11, 12):
        await store.record_message(7, 3, "same long text repeated again", created_at=now - timedelta(minutes=minutes))
    risk = await scanner.assess_repeated_message_risk(7, 3, "same long text repeated again", now=now)
    assert risk.total_score == 0

    for _ in range(3):
        await store.record_message(7, 3, "ok thanks", created_at=now - timedelta(minutes=1))
    risk = await scanner.assess_repeated_message_risk(7, 3, "ok thanks", now=now)
    assert risk.total_score == 0


@pytest.mark.asyncio
async def test_repeated_bid_message(store, now):
    scanner = RiskScanner(store)
    text = "Experienced electrician, licensed and insured"
    await store.record_bid(9, 4, text, created_at=now - timedelta(minutes=30))
    risk = await scanner.assess_repeated_bid_message_risk(9, 4, text, now=now)
    assert [s.code for s in risk.signals] == [RiskCode.REPEATED_BID_MESSAGE]
    assert risk.total_score == 20

    await store.record_bid(9, 4, text, created_at=now - timedelta(minutes=10))
    risk = await scanner.assess_repeated_bid_message_risk(9, 4, text, now=now)
    assert risk.total_score == 30


@pytest.mark.asyncio
async def test_job_post_burst(store, now):
    scanner = RiskScanner(store)
    for i in range(2):
        await store.record_job(5, job_id=i, created_at=now - timedelta(minutes=5))
    risk = await scanner.assess_job_post_risk(5, "Fix sink", "Leaky kitchen sink", now=now)
    assert risk.total_score == 0

    await store.record_job(5, job_id=3, created_at=now - timedelta(minutes=4))
    await store.record_job(5, job_id=4, created_at=now - timedelta(minutes=3))
    risk = await scanner.assess_job_post_risk(5, "Fix sink", "Leaky kitchen sink", now=now)
    assert [s.code for s in risk.signals] == [RiskCode.TOO_MANY_JOBS]
    assert risk.total_score == 30
    assert risk.signals[0].detail == "4 jobs in 30m"


@pytest.mark.asyncio
async def test_window_failures_fall_back_to_base_scan(broken_store, now):
    scanner = RiskScanner(broken_store)
    risk = await scanner.assess_repeated_message_risk(1, 2, "use zelle for the deposit please", now=now)
    assert [s.detail for s in risk.signals] == ["zelle"]
    risk = await scanner.assess_job_post_risk(2, "Title", "Body", now=now)
    assert risk.total_score == 0


def test_message_scan_alias():
    assert scan_message_risk("use paypal") == assess_text_risk("use paypal")


def test_non_ascii_digits_are_not_phones():
    assert assess_text_risk("رقم ٥٥٥-٢٢٢-١١١١").total_score == 0
    assert assess_text_risk("call ５５５-２２２-１１１１").total_score == 0
