from decimal import Decimal

from django.core.management.base import BaseCommand
from reservations.models import Coupon, Room, RoomType


class Command(BaseCommand):
    help = 'Populate database with sample room types, rooms and coupons'

    def handle(self, *args, **options):
        room_types_data = [
            {
                'name': 'Standard Room',
                'category': RoomType.Category.STANDARD,
                'base_price': Decimal('2000'),
                'max_occupancy': 2,
                'size': 220,
                'amenities': ['wifi', 'tv'],
                'features': ['city_view'],
                'description': 'Comfortable standard room with city view',
            },
            {
                'name': 'Deluxe King',
                'category': RoomType.Category.DELUXE,
                'base_price': Decimal('3200'),
                'max_occupancy': 3,
                'size': 300,
                'amenities': ['wifi', 'tv', 'minibar'],
                'features': ['city_view', 'balcony'],
                'description': 'Spacious deluxe room with a king bed',
            },
            {
                'name': 'Premium Ocean',
                'category': RoomType.Category.PREMIUM,
                'base_price': Decimal('4200'),
                'max_occupancy': 3,
                'size': 360,
                'amenities': ['wifi', 'tv', 'minibar', 'bathtub'],
                'features': ['ocean_view', 'balcony'],
                'description': 'Premium room with ocean view',
            },
            {
                'name': 'Family Suite',
                'category': RoomType.Category.SUITE,
                'base_price': Decimal('5000'),
                'max_occupancy': 4,
                'size': 520,
                'amenities': ['wifi', 'tv', 'minibar', 'bathtub', 'kitchenette'],
                'features': ['ocean_view', 'balcony', 'living_area'],
                'description': 'Large family suite with kitchenette',
            },
            {
                'name': 'Presidential Suite',
                'category': RoomType.Category.PRESIDENTIAL,
                'base_price': Decimal('12000'),
                'max_occupancy': 6,
                'size': 1100,
                'amenities': ['wifi', 'tv', 'minibar', 'bathtub', 'kitchenette', 'butler'],
                'features': ['ocean_view', 'terrace', 'living_area', 'dining_room'],
                'description': 'Luxury presidential suite with all amenities',
            },
        ]

        # (number, floor, room type name)
        rooms_data = [
            ('101', 1, 'Standard Room'),
            ('102', 1, 'Standard Room'),
            ('103', 1, 'Standard Room'),
            ('201', 2, 'Deluxe King'),
            ('202', 2, 'Deluxe King'),
            ('301', 3, 'Premium Ocean'),
            ('302', 3, 'Premium Ocean'),
            ('401', 4, 'Family Suite'),
            ('501', 5, 'Presidential Suite'),
        ]

        room_types = {}
        for room_type_data in room_types_data:
            room_type, created = RoomType.objects.get_or_create(
                name=room_type_data['name'],
                defaults=room_type_data
            )
            room_types[room_type.name] = room_type
            if created:
                self.stdout.write(f'Created room type: {room_type.name} (tier {room_type.tier})')
            else:
                self.stdout.write(f'Room type {room_type.name} already exists')

        for number, floor, type_name in rooms_data:
            room_type = room_types[type_name]
            room, created = Room.objects.get_or_create(
                number=number,
                defaults={
                    'floor': floor,
                    'room_type': room_type,
                    'amenities': list(room_type.amenities),
                    'features': list(room_type.features),
                }
            )

            if created:
                self.stdout.write(f'Created room: {room.number} - {room_type.name}')
            else:
                self.stdout.write(f'Room {room.number} already exists')

        coupon, created = Coupon.objects.get_or_create(code='SAVE10', defaults={'discount_rate': Decimal('0.10')})
        if created:
            self.stdout.write(f'Created coupon: {coupon.code}')

        self.stdout.write(
            self.style.SUCCESS('Successfully populated database with sample data')
        )
