"""Notification dispatcher - the daily expiry reminder job.

One invocation walks through these steps:

1. Rate check: stop when today's sent emails reached the daily cap.
2. Select: carry over unsent products of earlier days, then add the
   products due today to the day's run.
3. Group: sort the products of a batch into urgency buckets.
4. Batch: take the next slice of the day's selection.
5. Fan-out: render and send one email per recipient for the batch.
6. Record: store one notification per delivery attempt.
7. Report: summarize what happened.

Progress is persisted in a ``DispatchRun`` row per day, so an invocation never
sleeps between batches. When a delay is configured it records when the next
batch may go out and returns; a later invocation picks up from the cursor,
even when it runs on the next day.
"""

import logging
import typing as t
from datetime import date, datetime
from datetime import timedelta as td

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from expiro.core.config import SETTINGS, Settings
from expiro.core.database import translate_db_errors
from expiro.core.errors import RateLimitedError
from expiro.core.models import (
    DispatchRun,
    Notification,
    NotificationChannel,
    NotificationPolicy,
    NotificationStatus,
    Product,
    UserProfile,
)
from expiro.core.session import SessionClient
from expiro.schemas.notifications import (
    DeliveryLog,
    DispatchOutcome,
    DispatchReport,
)
from expiro.services.email_notifications import (
    DeliveryResult,
    MailTransport,
    build_reminder_subject,
    format_reminder_emails,
)
from expiro.services.user_directory import UserDirectory
from expiro.utils.dates import (
    as_utc,
    calculate_days_until_expiration,
    start_of_day_utc,
    today,
    utcnow,
)
from expiro.utils.expiry import UrgencyBucket, bucket_for, build_buckets

LOGGER = logging.getLogger(__name__)

# Unfinished runs older than this are not carried into the current day
CARRY_OVER_DAYS: int = 7

BUCKET_COLORS: t.Dict[str, str] = {
    "expired": "#D32F2F",
    "due_today": "#D32F2F",
}


def _bucket_color(bucket: UrgencyBucket) -> str:
    if bucket.key in BUCKET_COLORS:
        return BUCKET_COLORS[bucket.key]
    if bucket.upper_days is not None and bucket.upper_days <= 30:
        return "#F57C00"
    return "#388E3C"


class NotificationDispatcher:
    """Send batched expiry reminder emails under a daily cap."""

    client: SessionClient
    transport: MailTransport
    settings: Settings

    def __init__(
        self,
        client: SessionClient,
        transport: MailTransport,
        settings: Settings | None = None,
    ) -> None:
        """Initialize NotificationDispatcher.

        Args:
            client (SessionClient):
                Session client of the job; no caller identity is needed.
            transport (MailTransport):
                The transport emails are delivered through.
            settings (Settings | None):
                Dispatch policy. Defaults to the application settings.
        """
        self.client = client
        self.transport = transport
        self.settings = settings or SETTINGS
        self.buckets: t.List[UrgencyBucket] = build_buckets(
            self.settings.reminder_milestones,
            self.settings.expiry_threshold_days,
        )

    @property
    def db(self) -> AsyncSession:
        """The database session of the session client."""
        return self.client.db

    async def count_sent_today(self, on_day: date) -> int:
        """Count emails successfully sent on a calendar day.

        Args:
            on_day (date): The calendar day, in the reference timezone.

        Returns:
            int: Number of ``sent`` email notifications that day.
        """
        day_start: datetime = start_of_day_utc(
            on_day, self.settings.reference_timezone
        )
        day_end: datetime = start_of_day_utc(
            on_day + td(days=1), self.settings.reference_timezone
        )
        with translate_db_errors("count today's notifications"):
            return (
                await self.db.execute(
                    select(func.count())  # pylint: disable=not-callable
                    .select_from(Notification)
                    .where(
                        Notification.channel == NotificationChannel.EMAIL,
                        Notification.status == NotificationStatus.SENT,
                        Notification.sent_at >= day_start,
                        Notification.sent_at < day_end,
                    )
                )
            ).scalar() or 0

    async def check_rate_limit(self, on_day: date) -> int:
        """Make sure today's cap leaves room for more emails.

        Args:
            on_day (date): The calendar day.

        Returns:
            int: Number of emails already sent today.
        """
        sent_today: int = await self.count_sent_today(on_day)
        LOGGER.info(
            "Emails sent today: %d/%d",
            sent_today,
            self.settings.daily_email_cap,
        )
        if sent_today >= self.settings.daily_email_cap:
            raise RateLimitedError(sent_today, self.settings.daily_email_cap)
        return sent_today

    def has_room_for(self, sent_so_far: int, recipients: int) -> bool:
        """Check whether one more batch fits under the daily cap.

        A batch goes to every recipient, so it only goes out when all of its
        emails fit. When the recipients alone outnumber the cap, the first
        batch of the day is still sent.

        Args:
            sent_so_far (int): Emails already sent today.
            recipients (int): Number of emails the next batch produces.

        Returns:
            bool: True if the next batch may be sent.
        """
        cap: int = self.settings.daily_email_cap
        if sent_so_far >= cap:
            return False
        return sent_so_far + recipients <= cap or sent_so_far == 0

    async def select_due_product_ids(
        self, on_day: date, policy: NotificationPolicy
    ) -> t.List[str]:
        """Find the products due for a reminder on a day.

        Args:
            on_day (date): The calendar day.
            policy (NotificationPolicy): The selection policy of the run.

        Returns:
            t.List[str]: Product IDs, soonest expiry first.
        """
        query = select(Product.id)
        match policy:
            case NotificationPolicy.REMINDER_DATE:
                query = query.where(Product.reminder_date == on_day)
            case NotificationPolicy.MILESTONES:
                query = query.where(
                    Product.expiry_date.in_(
                        [
                            on_day + td(days=milestone)
                            for milestone in self.settings.reminder_milestones
                        ]
                    )
                )
        query = query.order_by(
            Product.expiry_date.asc(), Product.created_at.asc(), Product.id
        )

        with translate_db_errors("select due products"):
            return list((await self.db.execute(query)).scalars().all())

    async def _load_run(self, on_day: date) -> DispatchRun | None:
        return (
            await self.db.execute(
                select(DispatchRun).where(DispatchRun.run_date == on_day)
            )
        ).scalar_one_or_none()

    async def get_or_create_run(self, on_day: date) -> DispatchRun:
        """Get the dispatch run of a day, creating it on first use.

        Args:
            on_day (date): The calendar day.

        Returns:
            DispatchRun: The day's run.
        """
        with translate_db_errors("load dispatch run"):
            run: DispatchRun | None = await self._load_run(on_day)
            if run is not None:
                return run

            run = DispatchRun(
                run_date=on_day,
                policy=NotificationPolicy(self.settings.notification_policy),
                product_ids=[],
                cursor=0,
                batches_sent=0,
            )
            self.db.add(run)
            try:
                await self.db.flush()
            except IntegrityError:
                # Another invocation created the run first
                await self.db.rollback()
                existing: DispatchRun | None = await self._load_run(on_day)
                if existing is None:
                    raise
                return existing

        LOGGER.info(
            "Started dispatch run for %s (policy: %s)",
            on_day,
            run.policy.value,
        )
        return run

    async def carry_over_pending(self, run: DispatchRun) -> int:
        """Move unsent products of earlier unfinished runs into a run.

        Batches deferred past midnight, and products left behind when the
        daily cap was hit, continue in the current day's run. The latest
        pending ``next_eligible_at`` is inherited so the batch delay still
        holds across the day boundary.

        Args:
            run (DispatchRun): The current day's run.

        Returns:
            int: Number of products carried over.
        """
        with translate_db_errors("load pending dispatch runs"):
            earlier: t.Sequence[DispatchRun] = (
                (
                    await self.db.execute(
                        select(DispatchRun)
                        .where(
                            DispatchRun.run_date < run.run_date,
                            DispatchRun.run_date
                            >= run.run_date - td(days=CARRY_OVER_DAYS),
                        )
                        .order_by(DispatchRun.run_date.asc())
                    )
                )
                .scalars()
                .all()
            )

        carried: int = 0
        for pending in earlier:
            if pending.remaining == 0:
                continue
            known: t.Set[str] = set(run.product_ids)
            unsent: t.List[str] = [
                pid
                for pid in pending.product_ids[pending.cursor :]
                if pid not in known
            ]
            run.product_ids = [*run.product_ids, *unsent]
            carried += len(unsent)

            if pending.next_eligible_at is not None and (
                run.next_eligible_at is None
                or as_utc(pending.next_eligible_at)
                > as_utc(run.next_eligible_at)
            ):
                run.next_eligible_at = as_utc(pending.next_eligible_at)

            pending.cursor = len(pending.product_ids)
            pending.next_eligible_at = None
            LOGGER.info(
                "Carried %d unsent products from %s into %s",
                len(unsent),
                pending.run_date,
                run.run_date,
            )

        if carried:
            with translate_db_errors("save dispatch run"):
                await self.db.commit()
        return carried

    async def extend_selection(self, run: DispatchRun) -> int:
        """Add newly due products to the end of a run's selection.

        Args:
            run (DispatchRun): The day's run.

        Returns:
            int: Number of products added.
        """
        due_ids: t.List[str] = await self.select_due_product_ids(
            run.run_date, run.policy
        )
        known: t.Set[str] = set(run.product_ids)
        new_ids: t.List[str] = [pid for pid in due_ids if pid not in known]
        if new_ids:
            run.product_ids = [*run.product_ids, *new_ids]
            LOGGER.info(
                "Products due on %s: %d new, %d in total",
                run.run_date,
                len(new_ids),
                len(run.product_ids),
            )
        return len(new_ids)

    async def load_products(self, product_ids: t.List[str]) -> t.List[Product]:
        """Load products of a batch, keeping the batch order.

        Products deleted since they were selected are left out.

        Args:
            product_ids (t.List[str]): The IDs of the batch.

        Returns:
            t.List[Product]: The products still present.
        """
        with translate_db_errors("load products"):
            products: t.Sequence[Product] = (
                (
                    await self.db.execute(
                        select(Product).where(Product.id.in_(product_ids))
                    )
                )
                .scalars()
                .all()
            )
        by_id: t.Dict[str, Product] = {p.id: p for p in products}
        return [by_id[pid] for pid in product_ids if pid in by_id]

    async def load_recipients(self) -> t.List[UserProfile]:
        """Get all users that should receive reminders.

        Returns:
            t.List[UserProfile]: The recipients.
        """
        with translate_db_errors("list users"):
            return await UserDirectory(self.db).list_recipients()

    def group_products(
        self, products: t.Sequence[Product], on_day: date
    ) -> t.List[t.Dict[str, t.Any]]:
        """Sort products into urgency buckets.

        Args:
            products (t.Sequence[Product]): The products of a batch.
            on_day (date): The evaluation day.

        Returns:
            t.List[t.Dict[str, t.Any]]:
                Non-empty buckets, most urgent first, each holding the
                bucket, its color and the product details.
        """
        grouped: t.Dict[str, t.List[t.Dict[str, t.Any]]] = {
            bucket.key: [] for bucket in self.buckets
        }
        for product in products:
            bucket: UrgencyBucket | None = bucket_for(
                product.expiry_date, on_day, self.buckets
            )
            if bucket is None:
                LOGGER.debug(
                    "Product %s is beyond every bucket, using the last one",
                    product.id,
                )
                bucket = self.buckets[-1]
            grouped[bucket.key].append(
                {
                    "id": product.id,
                    "name": product.name,
                    "category": product.category,
                    "quantity": product.quantity,
                    "expiry_date": product.expiry_date,
                    "photo_url": product.photo_url,
                    "days_until_expiry": calculate_days_until_expiration(
                        product.expiry_date, on_day
                    ),
                }
            )

        LOGGER.info(
            "Grouped - %s",
            ", ".join(
                f"{bucket.key}: {len(grouped[bucket.key])}"
                for bucket in self.buckets
            ),
        )
        return [
            {
                "bucket": bucket,
                "color": _bucket_color(bucket),
                "products": grouped[bucket.key],
            }
            for bucket in self.buckets
            if grouped[bucket.key]
        ]

    async def deliver(  # pylint: disable=too-many-arguments,too-many-positional-arguments,line-too-long  # noqa: E501
        self,
        run: DispatchRun,
        batch_index: int,
        grouped: t.List[t.Dict[str, t.Any]],
        recipient: UserProfile,
        now: datetime,
    ) -> DeliveryLog:
        """Send one batch to one recipient and record the attempt.

        Args:
            run (DispatchRun): The day's run.
            batch_index (int): 0-based index of the batch within the run.
            grouped (t.List[t.Dict[str, t.Any]]): The bucketed products.
            recipient (UserProfile): The recipient.
            now (datetime): Timestamp of the invocation.

        Returns:
            DeliveryLog: The outcome of the attempt.
        """
        products_count: int = sum(len(group["products"]) for group in grouped)
        batch_number: int | None = (
            batch_index + 1
            if len(run.product_ids) > self.settings.notification_batch_size
            else None
        )
        email: str = recipient.email or ""

        try:
            html_body, text_body = format_reminder_emails(
                grouped, recipient, now
            )
            result: DeliveryResult = await self.transport.send(
                to_email=email,
                subject=build_reminder_subject(products_count, batch_number),
                html_body=html_body,
                text_body=text_body,
            )
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.exception("Error sending reminder to %s", email)
            result = DeliveryResult(ok=False, error=str(exc) or repr(exc))

        status: NotificationStatus = (
            NotificationStatus.SENT if result.ok else NotificationStatus.FAILED
        )
        self.db.add(
            Notification(
                user_id=recipient.id,
                channel=NotificationChannel.EMAIL,
                status=status,
                products_count=products_count,
                error_message=None if result.ok else result.error,
                sent_at=now,
                dispatch_run_id=run.id,
                batch_index=batch_index,
            )
        )
        with translate_db_errors("record notification"):
            await self.db.commit()

        if result.ok:
            LOGGER.info(
                "Reminder sent to %s (%d products)", email, products_count
            )
        else:
            LOGGER.warning(
                "Reminder to %s failed: %s", email, result.error
            )

        return DeliveryLog(
            user_id=recipient.id,
            email=email,
            status=status,
            products=products_count,
            batch_index=batch_index,
        )

    async def run(  # pylint: disable=too-many-return-statements,too-many-statements,line-too-long  # noqa: E501
        self, now: datetime | None = None
    ) -> DispatchReport:
        """Run one dispatcher invocation.

        Args:
            now (datetime | None): Clock override, defaults to UTC now.

        Returns:
            DispatchReport: What the invocation did.
        """
        now = as_utc(now or utcnow())
        on_day: date = today(now, self.settings.reference_timezone)
        policy = NotificationPolicy(self.settings.notification_policy)
        LOGGER.info("Daily reminder check started for %s", on_day)

        try:
            sent_today: int = await self.check_rate_limit(on_day)
        except RateLimitedError as exc:
            LOGGER.warning("%s", exc)
            return DispatchReport(
                outcome=DispatchOutcome.RATE_LIMITED,
                run_date=on_day,
                policy=policy,
                sent_today=exc.sent_today,
            )

        run: DispatchRun = await self.get_or_create_run(on_day)
        report: DispatchReport = DispatchReport(
            outcome=DispatchOutcome.DISPATCHED,
            run_date=on_day,
            policy=run.policy,
            sent_today=sent_today,
        )
        report.carried_products = await self.carry_over_pending(run)

        if run.next_eligible_at is not None and now < as_utc(
            run.next_eligible_at
        ):
            LOGGER.info(
                "Next batch is not due before %s", run.next_eligible_at
            )
            report.outcome = DispatchOutcome.DEFERRED
            report.remaining_products = run.remaining
            report.next_eligible_at = as_utc(run.next_eligible_at)
            return report

        await self.extend_selection(run)
        with translate_db_errors("save dispatch run"):
            await self.db.commit()

        if run.remaining == 0:
            report.outcome = (
                DispatchOutcome.COMPLETED
                if run.product_ids
                else DispatchOutcome.NOTHING_DUE
            )
            LOGGER.info("No reminders to send (%s)", report.outcome.value)
            return report

        recipients: t.List[UserProfile] = await self.load_recipients()
        report.users_count = len(recipients)
        LOGGER.info("Active recipients: %d", len(recipients))
        if not recipients:
            report.outcome = DispatchOutcome.NO_RECIPIENTS
            report.remaining_products = run.remaining
            return report

        batch_size: int = self.settings.notification_batch_size
        delay: td = td(minutes=self.settings.notification_batch_delay_minutes)

        while run.remaining > 0:
            sent_so_far: int = (
                await self.count_sent_today(on_day)
                if report.batches_sent
                else sent_today
            )
            if not self.has_room_for(sent_so_far, len(recipients)):
                LOGGER.warning(
                    "Daily email limit would be exceeded (%d sent, "
                    "%d recipients, cap %d), stopping before next batch",
                    sent_so_far,
                    len(recipients),
                    self.settings.daily_email_cap,
                )
                report.outcome = DispatchOutcome.RATE_LIMITED
                break

            batch_index: int = run.batches_sent
            batch_ids: t.List[str] = run.product_ids[
                run.cursor : run.cursor + batch_size
            ]
            products: t.List[Product] = await self.load_products(batch_ids)

            # Advance before sending: a crash skips a batch, never repeats it
            run.cursor += len(batch_ids)
            run.batches_sent += 1
            run.next_eligible_at = (
                now + delay if run.remaining > 0 and delay else None
            )
            with translate_db_errors("save dispatch run"):
                await self.db.commit()

            if products:
                grouped = self.group_products(products, on_day)
                for recipient in recipients:
                    delivery: DeliveryLog = await self.deliver(
                        run, batch_index, grouped, recipient, now
                    )
                    report.results.append(delivery)
                    if delivery.status == NotificationStatus.SENT:
                        report.emails_sent += 1
                    else:
                        report.emails_failed += 1
                report.products_count += len(products)
            else:
                LOGGER.info("Batch %d is empty, skipping", batch_index)
            report.batches_sent += 1

            if run.next_eligible_at is not None:
                report.next_eligible_at = run.next_eligible_at
                LOGGER.info(
                    "%d products left, next batch after %s",
                    run.remaining,
                    run.next_eligible_at,
                )
                break

        report.remaining_products = run.remaining
        report.sent_today = sent_today + report.emails_sent
        LOGGER.info(
            "Sent %d reminder emails (%d failed) covering %d products "
            "in %d batches to %d users",
            report.emails_sent,
            report.emails_failed,
            report.products_count,
            report.batches_sent,
            report.users_count,
        )
        return report
