import math

from django.db import models
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator

from .conf import default_currency


class RoomType(models.Model):
    class Category(models.TextChoices):
        STANDARD = "standard"
        DELUXE = "deluxe"
        PREMIUM = "premium"
        SUITE = "suite"
        PRESIDENTIAL = "presidential"

    # Default tier per category; upgrades only move to a strictly higher tier.
    CATEGORY_TIERS = {
        Category.STANDARD: 1,
        Category.DELUXE: 2,
        Category.PREMIUM: 3,
        Category.SUITE: 4,
        Category.PRESIDENTIAL: 5,
    }

    name = models.CharField(max_length=100)
    category = models.CharField(max_length=20, choices=Category.choices, default=Category.STANDARD)
    tier = models.PositiveSmallIntegerField(blank=True)
    base_price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])
    max_occupancy = models.PositiveIntegerField(default=2, validators=[MinValueValidator(1)])
    size = models.PositiveIntegerField(default=0, help_text="Room size in sqft")
    amenities = models.JSONField(default=list, blank=True)
    features = models.JSONField(default=list, blank=True)
    description = models.TextField(blank=True)

    class Meta:
        ordering = ['tier', 'name']

    def __str__(self):
        return self.name

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._stored_tiering = (instance.__dict__.get('category'), instance.__dict__.get('tier'))
        return instance

    def save(self, *args, **kwargs):
        stored = getattr(self, '_stored_tiering', None)
        # A category change without an explicit new tier moves the tier along with it.
        recategorised = stored is not None and stored[0] != self.category and stored[1] == self.tier
        if self.tier is None or recategorised:
            self.tier = self.CATEGORY_TIERS[self.category]
        super().save(*args, **kwargs)
        self._stored_tiering = (self.category, self.tier)


class Room(models.Model):
    class Status(models.TextChoices):
        AVAILABLE = "available"
        OCCUPIED = "occupied"
        MAINTENANCE = "maintenance"
        CLEANING = "cleaning"
        OUT_OF_ORDER = "out_of_order"

    number = models.CharField(max_length=20, unique=True)
    floor = models.IntegerField(default=0)
    room_type = models.ForeignKey(RoomType, on_delete=models.PROTECT, related_name="rooms")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.AVAILABLE)
    amenities = models.JSONField(default=list, blank=True)
    features = models.JSONField(default=list, blank=True)
    current_booking = models.OneToOneField(
        'Booking',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="current_room",
    )
    last_cleaned = models.DateTimeField(null=True, blank=True)
    version = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['number']

    def __str__(self):
        return f"Room {self.number}"

    def clean(self):
        occupied = self.status == self.Status.OCCUPIED
        if occupied != (self.current_booking_id is not None):
            raise ValidationError("An occupied room must reference exactly its current booking")


class Guest(models.Model):
    full_name = models.CharField(max_length=150)
    email = models.EmailField()
    phone = models.CharField(max_length=50, blank=True)

    def __str__(self):
        return self.full_name


class Coupon(models.Model):
    code = models.CharField(max_length=40, unique=True)
    discount_rate = models.DecimalField(
        max_digits=4,
        decimal_places=3,
        default="0.100",
        validators=[MinValueValidator(0)],
        help_text="Fraction of the subtotal taken off, e.g. 0.100 for 10%",
    )
    active = models.BooleanField(default=True)
    valid_from = models.DateField(null=True, blank=True)
    valid_until = models.DateField(null=True, blank=True)

    def __str__(self):
        return self.code

    def save(self, *args, **kwargs):
        self.code = self.code.strip().upper()
        super().save(*args, **kwargs)

    def is_valid_on(self, day):
        if not self.active:
            return False
        if self.valid_from and day < self.valid_from:
            return False
        if self.valid_until and day > self.valid_until:
            return False
        return True


class Booking(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending"
        CONFIRMED = "confirmed"
        CANCELLED = "cancelled"
        COMPLETED = "completed"

    class PaymentStatus(models.TextChoices):
        PENDING = "pending"
        PAID = "paid"
        FAILED = "failed"
        REFUNDED = "refunded"
        PARTIALLY_REFUNDED = "partially_refunded"

    guest = models.ForeignKey(Guest, on_delete=models.CASCADE, related_name="bookings")
    room_type = models.ForeignKey(RoomType, on_delete=models.PROTECT, null=True, blank=True, related_name="bookings")
    room = models.ForeignKey(Room, on_delete=models.SET_NULL, null=True, blank=True, related_name="bookings")
    check_in = models.DateField()
    check_out = models.DateField()  # exclusive
    adults = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    children = models.PositiveIntegerField(default=0)
    rooms = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    add_ons = models.JSONField(default=list, blank=True)
    coupon_code = models.CharField(max_length=40, blank=True)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])
    currency = models.CharField(max_length=3, default=default_currency)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)
    payment_status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    room_preferences = models.JSONField(default=list, blank=True)
    special_requests = models.TextField(blank=True)
    client_token = models.CharField(max_length=64, unique=True, null=True, blank=True)
    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Booking {self.pk} ({self.check_in} to {self.check_out})"

    @property
    def nights(self):
        return (self.check_out - self.check_in).days

    @property
    def guest_count(self):
        return self.adults + self.children

    @property
    def guests_per_room(self):
        # A multi-room party is spread evenly; each room must sleep its share.
        return math.ceil(self.guest_count / max(self.rooms, 1))

    def clean(self):
        if self.check_in and self.check_out and self.check_out <= self.check_in:
            raise ValidationError("check_out must be after check_in")


class Payment(models.Model):
    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name="payments")
    amount = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])
    currency = models.CharField(max_length=3, default=default_currency)
    status = models.CharField(
        max_length=20,
        choices=Booking.PaymentStatus.choices,
        default=Booking.PaymentStatus.PENDING,
    )
    order_id = models.CharField(max_length=100, unique=True)
    provider_ref = models.CharField(max_length=100, blank=True)
    refunded_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    @property
    def refundable_amount(self):
        return self.amount - self.refunded_amount


class BookingUpgrade(models.Model):
    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name="upgrades")
    from_room_type = models.ForeignKey(RoomType, on_delete=models.PROTECT, related_name="+")
    to_room_type = models.ForeignKey(RoomType, on_delete=models.PROTECT, related_name="+")
    fee = models.DecimalField(max_digits=12, decimal_places=2)
    reason = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
