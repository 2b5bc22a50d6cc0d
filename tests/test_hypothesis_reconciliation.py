"""
Hypothesis Property-Based Tests for reconciliation.

Checks the transition rules hold for arbitrary orderings and repetitions of
payment events, plus status mapping and signature properties.
"""

import asyncio
from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from tutorpay.models.api import PurchaseStatus, ReconcileResult, SubscriptionStatus
from tutorpay.models.domain import mint_reference
from tutorpay.models.events import parse_webhook_event
from tutorpay.services.reconciliation import map_subscription_status
from tutorpay.services.signature import compute_signature, verify_signature

# ============================================================================
# Hypothesis Strategies
# ============================================================================

prices = st.integers(min_value=1, max_value=10_000_000)
bodies = st.binary(min_size=0, max_size=2048)
secrets_ = st.text(min_size=1, max_size=64)

# (source, processor status) pairs delivered for one reference
deliveries = st.lists(
    st.tuples(
        st.sampled_from(["redirect", "webhook"]),
        st.sampled_from(["success", "failed", "abandoned"]),
    ),
    min_size=1,
    max_size=8,
)


@st.composite
def cased(draw, words):
    """A word from words with random casing and padding."""
    word = draw(st.sampled_from(words))
    flips = draw(st.lists(st.booleans(), min_size=len(word), max_size=len(word)))
    pad = draw(st.sampled_from(["", " ", "  "]))
    return pad + "".join(c.upper() if f else c for c, f in zip(word, flips)) + pad


# ============================================================================
# Status mapping
# ============================================================================


class TestStatusMappingProperties:
    """map_subscription_status is total and case-insensitive."""

    @given(cased(["canceled", "cancelled"]))
    def test_canceled_spellings(self, raw: str) -> None:
        assert map_subscription_status(raw) is SubscriptionStatus.CANCELED

    @given(cased(["active", "completed"]))
    def test_active_spellings(self, raw: str) -> None:
        assert map_subscription_status(raw) is SubscriptionStatus.ACTIVE

    @given(st.text(max_size=30))
    def test_total(self, raw: str) -> None:
        status = map_subscription_status(raw)
        assert isinstance(status, SubscriptionStatus)
        if raw.strip().lower() not in {"canceled", "cancelled", "active", "completed"}:
            assert status is SubscriptionStatus.PAST_DUE


# ============================================================================
# Signatures
# ============================================================================


class TestSignatureProperties:
    """Signature round-trips and single-bit tampering."""

    @given(bodies, secrets_)
    def test_own_signature_verifies(self, body: bytes, secret: str) -> None:
        assert verify_signature(body, compute_signature(body, secret), secret)

    @given(bodies.filter(len), secrets_, st.data())
    def test_any_flipped_byte_fails(self, body: bytes, secret: str, data: st.DataObject) -> None:
        index = data.draw(st.integers(min_value=0, max_value=len(body) - 1))
        tampered = bytearray(body)
        tampered[index] ^= 0x01
        assert not verify_signature(bytes(tampered), compute_signature(body, secret), secret)


# ============================================================================
# References
# ============================================================================


class TestReferenceProperties:
    """Minted references."""

    @given(st.integers(min_value=2, max_value=50))
    def test_unique_and_prefixed(self, count: int) -> None:
        user_id = uuid4()
        references = [mint_reference(user_id) for _ in range(count)]
        assert len(set(references)) == count
        assert all(r.startswith("TXN_") for r in references)


# ============================================================================
# Transition rules
# ============================================================================


class TestTransitionProperties:
    """Any delivery sequence moves a purchase out of pending at most once."""

    @settings(max_examples=60, suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(prices, deliveries)
    def test_first_terminal_event_wins(self, engine_factory, price: int, sequence) -> None:
        ledger, processor, engine = engine_factory()
        user_id = uuid4()
        video = ledger.add_video(price_minor=price)
        reference = mint_reference(user_id)
        ledger.add_purchase(user_id, video.video_id, reference, amount_minor=price)

        async def deliver():
            outcomes = []
            for source, status in sequence:
                if source == "redirect":
                    processor.settle(reference, status=status, amount_minor=price)
                    outcomes.append(await engine.reconcile_by_redirect(reference))
                else:
                    payload = {
                        "event": "charge.success",
                        "data": {"reference": reference, "status": status, "amount": price},
                    }
                    outcomes.append(await engine.reconcile_by_webhook(parse_webhook_event(payload)))
            return outcomes

        outcomes = asyncio.run(deliver())

        # Webhooks only ever apply success; redirects apply success or confirmed failure
        decisive = [
            "success" if status == "success" else "failed"
            for source, status in sequence
            if status == "success" or (source == "redirect" and status == "failed")
        ]
        final = ledger.purchases[reference].status
        if decisive:
            assert final is PurchaseStatus(decisive[0])
        else:
            assert final is PurchaseStatus.PENDING

        transitions = [
            o for o in outcomes if o.result in (ReconcileResult.APPLIED, ReconcileResult.PAYMENT_FAILED)
        ]
        assert len(transitions) == (1 if decisive else 0)

    @settings(max_examples=30, suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(prices, st.integers(min_value=2, max_value=6))
    def test_concurrent_deliveries_apply_once(self, engine_factory, price: int, copies: int) -> None:
        ledger, processor, engine = engine_factory()
        user_id = uuid4()
        video = ledger.add_video(price_minor=price)
        reference = mint_reference(user_id)
        ledger.add_purchase(user_id, video.video_id, reference, amount_minor=price)
        processor.settle(reference, amount_minor=price)
        event = parse_webhook_event(
            {
                "event": "charge.success",
                "data": {"reference": reference, "status": "success", "amount": price},
            }
        )

        async def race():
            return await asyncio.gather(
                engine.reconcile_by_redirect(reference),
                *(engine.reconcile_by_webhook(event) for _ in range(copies)),
            )

        outcomes = asyncio.run(race())

        assert sum(o.result is ReconcileResult.APPLIED for o in outcomes) == 1
        assert all(o.granted for o in outcomes)
        assert ledger.purchases[reference].status is PurchaseStatus.SUCCESS
