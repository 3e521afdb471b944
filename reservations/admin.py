from django.contrib import admin
from .models import Booking, BookingUpgrade, Coupon, Guest, Payment, Room, RoomType


@admin.register(RoomType)
class RoomTypeAdmin(admin.ModelAdmin):
    list_display = ('name', 'category', 'tier', 'base_price', 'max_occupancy')
    list_filter = ('category',)


@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    list_display = ('number', 'floor', 'room_type', 'status', 'current_booking')
    list_filter = ('status', 'room_type', 'floor')
    search_fields = ('number',)
    # Occupancy is owned by allocation and checkout.
    readonly_fields = ('status', 'current_booking', 'version')


@admin.register(Guest)
class GuestAdmin(admin.ModelAdmin):
    list_display = ('full_name', 'email', 'phone')
    search_fields = ('full_name', 'email')


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = ('code', 'discount_rate', 'active', 'valid_from', 'valid_until')
    list_filter = ('active',)


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ('id', 'guest', 'room_type', 'room', 'check_in', 'check_out', 'status', 'payment_status', 'total_amount')
    list_filter = ('status', 'payment_status', 'room_type')
    search_fields = ('guest__email', 'guest__full_name', 'client_token')
    readonly_fields = ('status', 'payment_status', 'room', 'version')


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ('order_id', 'booking', 'amount', 'refunded_amount', 'status')
    list_filter = ('status',)
    search_fields = ('order_id', 'provider_ref')


@admin.register(BookingUpgrade)
class BookingUpgradeAdmin(admin.ModelAdmin):
    list_display = ('booking', 'from_room_type', 'to_room_type', 'fee', 'created_at')
