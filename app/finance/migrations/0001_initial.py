"""
Create the ledger and the finance domain models.

Changes:
    - Ledger: Account, Transaction, TransactionEntry, LineEntry
    - Balance and single-sided line check constraints
    - Vendor, Debtor, Expense, PettyCashAllocation, PettyCashUsage
"""

import uuid
from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
import django_fsm
from django.conf import settings
from django.db import migrations, models

import finance.models.debtor
import finance.models.expense

ACCOUNT_TYPES = [
    ("asset", "Asset"),
    ("liability", "Liability"),
    ("equity", "Equity"),
    ("income", "Income"),
    ("expense", "Expense"),
]


def _id():
    return models.UUIDField(
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
        primary_key=True,
        serialize=False,
    )


def _created_at():
    return models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this record was created",
    )


def _updated_at():
    return models.DateTimeField(
        auto_now=True,
        help_text="Timestamp when this record was last modified",
    )


def _money(help_text, default=None):
    if default is None:
        return models.DecimalField(decimal_places=2, help_text=help_text, max_digits=14)
    return models.DecimalField(
        decimal_places=2, default=default, help_text=help_text, max_digits=14
    )


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("properties", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        # =====================================================================
        # Ledger
        # =====================================================================
        migrations.CreateModel(
            name="Account",
            fields=[
                ("id", _id()),
                ("created_at", _created_at()),
                ("updated_at", _updated_at()),
                (
                    "code",
                    models.CharField(
                        help_text="Unique account code", max_length=20, unique=True
                    ),
                ),
                (
                    "name",
                    models.CharField(help_text="Account display name", max_length=200),
                ),
                (
                    "type",
                    models.CharField(
                        choices=ACCOUNT_TYPES,
                        help_text="Account class; fixed once lines reference the account",
                        max_length=20,
                    ),
                ),
                (
                    "category",
                    models.CharField(
                        blank=True, default="", help_text="Grouping label", max_length=100
                    ),
                ),
                (
                    "description",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Longer description of what the account holds",
                    ),
                ),
                (
                    "parent_code",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Code of the parent account, if any",
                        max_length=20,
                        null=True,
                    ),
                ),
                (
                    "is_active",
                    models.BooleanField(
                        db_index=True,
                        default=True,
                        help_text="Whether this account accepts new postings",
                    ),
                ),
            ],
            options={
                "ordering": ["code"],
                "indexes": [
                    models.Index(fields=["type", "code"], name="account_type_code_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Transaction",
            fields=[
                ("id", _id()),
                ("created_at", _created_at()),
                ("updated_at", _updated_at()),
                (
                    "transaction_id",
                    models.CharField(
                        help_text="Human-readable transaction reference",
                        max_length=40,
                        unique=True,
                    ),
                ),
                (
                    "date",
                    models.DateField(db_index=True, help_text="Economic date of the event"),
                ),
                (
                    "description",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Description of the business event",
                    ),
                ),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("approval", "Approval"),
                            ("payment", "Payment"),
                            ("advance_payment", "Advance Payment"),
                            ("debt_settlement", "Debt Settlement"),
                            ("current_payment", "Current Payment"),
                            ("accrual", "Accrual"),
                            ("invoice", "Invoice"),
                            ("vendor_payment", "Vendor Payment"),
                            ("supply_purchase", "Supply Purchase"),
                            ("petty_cash_allocation", "Petty Cash Allocation"),
                            ("petty_cash_expense", "Petty Cash Expense"),
                            ("petty_cash_replenishment", "Petty Cash Replenishment"),
                            ("reversal", "Reversal"),
                            ("adjustment", "Adjustment"),
                        ],
                        db_index=True,
                        help_text="Business classification of the event",
                        max_length=40,
                    ),
                ),
                (
                    "reference",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        default="",
                        help_text="Identifier of the originating business object",
                        max_length=255,
                    ),
                ),
                (
                    "residence",
                    models.ForeignKey(
                        help_text="Residence the event is attributed to",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to="properties.residence",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="User who triggered the event",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-date", "-created_at"],
            },
        ),
        migrations.CreateModel(
            name="TransactionEntry",
            fields=[
                ("id", _id()),
                ("created_at", _created_at()),
                ("updated_at", _updated_at()),
                (
                    "date",
                    models.DateField(
                        db_index=True, help_text="Economic date of the posting"
                    ),
                ),
                (
                    "description",
                    models.TextField(
                        blank=True, default="", help_text="Description of the posting"
                    ),
                ),
                ("total_debit", _money("Sum of debit lines")),
                ("total_credit", _money("Sum of credit lines")),
                (
                    "source",
                    models.CharField(
                        choices=[
                            ("expense_accrual", "Expense Accrual"),
                            ("expense_payment", "Expense Payment"),
                            ("supply_purchase", "Supply Purchase"),
                            ("vendor_payment", "Vendor Payment"),
                            ("payment", "Student Payment"),
                            ("invoice", "Invoice"),
                            ("invoice_payment", "Invoice Payment"),
                            ("lease_start", "Lease Start Accrual"),
                            ("rental_accrual", "Monthly Rent Accrual"),
                            ("deferred_income_release", "Deferred Income Release"),
                            ("petty_cash_allocation", "Petty Cash Allocation"),
                            ("petty_cash_expense", "Petty Cash Expense"),
                            ("petty_cash_replenishment", "Petty Cash Replenishment"),
                            ("reversal", "Reversal"),
                            ("manual", "Manual"),
                        ],
                        help_text="Subsystem that produced this posting",
                        max_length=40,
                    ),
                ),
                (
                    "source_id",
                    models.CharField(
                        help_text="Identifier of the originating business object",
                        max_length=255,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("draft", "Draft"),
                            ("posted", "Posted"),
                            ("reversed", "Reversed"),
                        ],
                        db_index=True,
                        default="posted",
                        help_text="draft, posted or reversed",
                        max_length=20,
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Context such as billing period, student id, settlement details",
                    ),
                ),
                (
                    "idempotency_key",
                    models.CharField(
                        help_text="Unique key to prevent duplicate postings",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "transaction",
                    models.OneToOneField(
                        help_text="Owning transaction header",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="entry",
                        to="finance.transaction",
                    ),
                ),
                (
                    "residence",
                    models.ForeignKey(
                        help_text="Residence the posting is attributed to",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transaction_entries",
                        to="properties.residence",
                    ),
                ),
                (
                    "reversal_of",
                    models.ForeignKey(
                        blank=True,
                        help_text="Entry offset by this reversal",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="reversals",
                        to="finance.transactionentry",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="User who triggered the posting",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "transaction entries",
                "ordering": ["-date", "-created_at"],
                "indexes": [
                    models.Index(fields=["source", "source_id"], name="entry_source_idx"),
                    models.Index(
                        fields=["residence", "date"], name="entry_residence_date_idx"
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("total_debit", models.F("total_credit"))),
                        name="transaction_entry_balanced",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("total_debit__gte", 0)),
                        name="transaction_entry_total_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="LineEntry",
            fields=[
                ("id", _id()),
                (
                    "position",
                    models.PositiveIntegerField(
                        default=0, help_text="Order of the line within the posting"
                    ),
                ),
                (
                    "account_code",
                    models.CharField(
                        db_index=True,
                        help_text="Account code at posting time",
                        max_length=20,
                    ),
                ),
                (
                    "account_type",
                    models.CharField(
                        choices=ACCOUNT_TYPES,
                        help_text="Account type at posting time",
                        max_length=20,
                    ),
                ),
                ("debit", _money("Debit amount", default=Decimal("0.00"))),
                ("credit", _money("Credit amount", default=Decimal("0.00"))),
                (
                    "description",
                    models.CharField(
                        blank=True, default="", help_text="Line narrative", max_length=500
                    ),
                ),
                (
                    "period",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        default="",
                        help_text="Billing period (YYYY-MM) the line relates to, if any",
                        max_length=7,
                    ),
                ),
                (
                    "entry",
                    models.ForeignKey(
                        help_text="Posting this line belongs to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="lines",
                        to="finance.transactionentry",
                    ),
                ),
                (
                    "account",
                    models.ForeignKey(
                        help_text="Account affected by this line",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="lines",
                        to="finance.account",
                    ),
                ),
            ],
            options={
                "ordering": ["entry", "position"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("debit__gte", 0), ("credit__gte", 0)),
                        name="line_entry_amounts_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("debit", 0), ("credit", 0), _connector="OR"),
                        name="line_entry_single_sided",
                    ),
                ],
            },
        ),
        # =====================================================================
        # Vendors and debtors
        # =====================================================================
        migrations.CreateModel(
            name="Vendor",
            fields=[
                ("id", _id()),
                ("created_at", _created_at()),
                ("updated_at", _updated_at()),
                (
                    "vendor_code",
                    models.CharField(
                        help_text="Business identifier of the vendor",
                        max_length=50,
                        unique=True,
                    ),
                ),
                (
                    "business_name",
                    models.CharField(
                        db_index=True, help_text="Registered trading name", max_length=255
                    ),
                ),
                (
                    "category",
                    models.CharField(
                        blank=True, default="", help_text="Trade category", max_length=50
                    ),
                ),
                (
                    "chart_of_accounts_code",
                    models.CharField(
                        blank=True,
                        help_text="Code of this vendor's payable sub-ledger account",
                        max_length=20,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "expense_account_code",
                    models.CharField(
                        blank=True,
                        help_text="Default expense account for this vendor's work",
                        max_length=20,
                        null=True,
                    ),
                ),
                (
                    "is_active",
                    models.BooleanField(default=True, help_text="Whether this vendor is in use"),
                ),
            ],
            options={
                "ordering": ["business_name"],
            },
        ),
        migrations.CreateModel(
            name="Debtor",
            fields=[
                ("id", _id()),
                ("created_at", _created_at()),
                ("updated_at", _updated_at()),
                (
                    "debtor_code",
                    models.CharField(
                        default=finance.models.debtor.generate_debtor_code,
                        help_text="Human-readable debtor reference",
                        max_length=20,
                        unique=True,
                    ),
                ),
                ("monthly_rent", _money("Contracted monthly rent", default=Decimal("0.00"))),
                ("admin_fee", _money("One-off administration fee", default=Decimal("0.00"))),
                ("deposit", _money("Refundable security deposit", default=Decimal("0.00"))),
                (
                    "lease_start_date",
                    models.DateField(blank=True, help_text="First day of the lease", null=True),
                ),
                (
                    "lease_end_date",
                    models.DateField(blank=True, help_text="Last day of the lease", null=True),
                ),
                (
                    "current_balance",
                    _money(
                        "Cached position: positive owed, negative credit held",
                        default=Decimal("0.00"),
                    ),
                ),
                ("total_owed", _money("Cached lifetime charges", default=Decimal("0.00"))),
                ("total_paid", _money("Cached lifetime payments", default=Decimal("0.00"))),
                (
                    "monthly_payments",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Per-period paid components keyed by YYYY-MM",
                    ),
                ),
                (
                    "last_reconciled_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the projection was last rebuilt from the ledger",
                        null=True,
                    ),
                ),
                (
                    "is_active",
                    models.BooleanField(
                        db_index=True,
                        default=True,
                        help_text="Whether monthly rent is still accrued",
                    ),
                ),
                (
                    "student",
                    models.OneToOneField(
                        help_text="Student this debtor record tracks",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="debtor",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "residence",
                    models.ForeignKey(
                        help_text="Residence of the lease",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="debtors",
                        to="properties.residence",
                    ),
                ),
            ],
            options={
                "ordering": ["debtor_code"],
            },
        ),
        # =====================================================================
        # Expenses
        # =====================================================================
        migrations.CreateModel(
            name="Expense",
            fields=[
                ("id", _id()),
                ("created_at", _created_at()),
                ("updated_at", _updated_at()),
                (
                    "expense_id",
                    models.CharField(
                        default=finance.models.expense.generate_expense_id,
                        help_text="Human-readable expense reference",
                        max_length=40,
                        unique=True,
                    ),
                ),
                (
                    "category",
                    models.CharField(
                        blank=True, default="", help_text="Expense category", max_length=50
                    ),
                ),
                (
                    "description",
                    models.TextField(
                        blank=True, default="", help_text="What was bought or done"
                    ),
                ),
                ("amount", _money("Amount accrued")),
                (
                    "payment_status",
                    django_fsm.FSMField(
                        choices=[("Pending", "Pending"), ("Paid", "Paid")],
                        db_index=True,
                        default="Pending",
                        help_text="Payment status (managed by FSM)",
                        max_length=50,
                    ),
                ),
                (
                    "vendor_specific_account",
                    models.CharField(
                        blank=True,
                        help_text="Vendor sub-ledger account credited by the accrual",
                        max_length=20,
                        null=True,
                    ),
                ),
                (
                    "liability_account_code",
                    models.CharField(
                        blank=True,
                        help_text="Exact account credited by the accrual",
                        max_length=20,
                        null=True,
                    ),
                ),
                (
                    "expense_account_code",
                    models.CharField(
                        blank=True,
                        help_text="Expense account debited by the accrual",
                        max_length=20,
                        null=True,
                    ),
                ),
                (
                    "source_type",
                    models.CharField(
                        choices=[
                            ("maintenance_request", "Maintenance Request"),
                            ("supply_purchase", "Supply Purchase"),
                            ("petty_cash", "Petty Cash"),
                        ],
                        default="maintenance_request",
                        help_text="Kind of business object the expense came from",
                        max_length=40,
                    ),
                ),
                (
                    "source_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        default="",
                        help_text="Identifier of the originating request",
                        max_length=255,
                    ),
                ),
                (
                    "item_index",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Index of the request item this expense accrues",
                        null=True,
                    ),
                ),
                (
                    "paid_date",
                    models.DateField(
                        blank=True, help_text="Date the expense was settled", null=True
                    ),
                ),
                (
                    "payment_method",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="How the expense was settled",
                        max_length=50,
                    ),
                ),
                (
                    "residence",
                    models.ForeignKey(
                        help_text="Residence the expense belongs to",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="expenses",
                        to="properties.residence",
                    ),
                ),
                (
                    "vendor",
                    models.ForeignKey(
                        blank=True,
                        help_text="Supplier, when known",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="expenses",
                        to="finance.vendor",
                    ),
                ),
                (
                    "transaction",
                    models.ForeignKey(
                        blank=True,
                        help_text="Accrual transaction for this expense",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="expenses",
                        to="finance.transaction",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["source_type", "source_id"], name="expense_source_idx"
                    ),
                    models.Index(
                        fields=["vendor", "payment_status"],
                        name="expense_vendor_status_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="expense_amount_positive",
                    ),
                    models.UniqueConstraint(
                        fields=("source_type", "source_id", "item_index"),
                        name="unique_expense_per_request_item",
                    ),
                ],
            },
        ),
        # =====================================================================
        # Petty cash
        # =====================================================================
        migrations.CreateModel(
            name="PettyCashAllocation",
            fields=[
                ("id", _id()),
                ("created_at", _created_at()),
                ("updated_at", _updated_at()),
                ("allocated_amount", _money("Total allocated", default=Decimal("0.00"))),
                ("used_amount", _money("Total approved spend", default=Decimal("0.00"))),
                (
                    "remaining_amount",
                    _money(
                        "Allocated minus used (recomputed on save)",
                        default=Decimal("0.00"),
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("active", "Active"),
                            ("inactive", "Inactive"),
                            ("closed", "Closed"),
                        ],
                        db_index=True,
                        default="active",
                        help_text="Allocation status (managed by FSM)",
                        max_length=50,
                    ),
                ),
                (
                    "role_account_code",
                    models.CharField(
                        help_text="Petty cash account holding this allocation",
                        max_length=20,
                    ),
                ),
                ("notes", models.TextField(blank=True, default="", help_text="Notes")),
                (
                    "user",
                    models.ForeignKey(
                        help_text="Custodian holding the cash",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="petty_cash_allocations",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "residence",
                    models.ForeignKey(
                        help_text="Residence the allocation was posted against",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="petty_cash_allocations",
                        to="properties.residence",
                    ),
                ),
                (
                    "transaction",
                    models.ForeignKey(
                        blank=True,
                        help_text="Allocation posting",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="+",
                        to="finance.transaction",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["user", "status"], name="petty_alloc_user_status_idx"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PettyCashUsage",
            fields=[
                ("id", _id()),
                ("created_at", _created_at()),
                ("updated_at", _updated_at()),
                ("amount", _money("Amount spent")),
                (
                    "category",
                    models.CharField(
                        blank=True, default="", help_text="Expense category", max_length=50
                    ),
                ),
                (
                    "description",
                    models.TextField(blank=True, default="", help_text="What was bought"),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("approved", "Approved"),
                            ("rejected", "Rejected"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Usage status (managed by FSM)",
                        max_length=50,
                    ),
                ),
                (
                    "source_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Originating request id",
                        max_length=255,
                    ),
                ),
                (
                    "rejection_reason",
                    models.TextField(
                        blank=True, default="", help_text="Why the spend was rejected"
                    ),
                ),
                (
                    "usage_date",
                    models.DateField(
                        default=django.utils.timezone.localdate,
                        help_text="Date of the spend",
                    ),
                ),
                (
                    "allocation",
                    models.ForeignKey(
                        help_text="Allocation the money comes from",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="usages",
                        to="finance.pettycashallocation",
                    ),
                ),
                (
                    "expense",
                    models.ForeignKey(
                        blank=True,
                        help_text="Accrued expense settled by this spend",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="petty_cash_usages",
                        to="finance.expense",
                    ),
                ),
                (
                    "transaction",
                    models.ForeignKey(
                        blank=True,
                        help_text="Posting made on approval",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="+",
                        to="finance.transaction",
                    ),
                ),
                (
                    "approved_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="User who approved the spend",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="petty_cash_usage_amount_positive",
                    ),
                ],
            },
        ),
    ]
