"""
Management command to seed the database with sample marketplace data.

Generates:
- Vendors, each with a user account
- Products with stock, some with variants
- Buyers with orders awaiting payment

Usage:
    python manage.py seed_data
    python manage.py seed_data --clear  # Clear existing data first
"""
import random
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from inventory.models import Vendor, Product, ProductVariant


class Command(BaseCommand):
    help = 'Seed the database with sample vendors, products, variants and pending orders'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing data before seeding',
        )
        parser.add_argument(
            '--vendors',
            type=int,
            default=5,
            help='Number of vendors to create (default: 5)',
        )
        parser.add_argument(
            '--products',
            type=int,
            default=40,
            help='Number of products to create (default: 40)',
        )
        parser.add_argument(
            '--orders',
            type=int,
            default=10,
            help='Number of pending orders to create (default: 10)',
        )

    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write('Clearing existing data...')
            self._clear_data()

        self.stdout.write('Starting database seeding...')

        with transaction.atomic():
            vendors = self._create_vendors(options['vendors'])
            products = self._create_products(options['products'], vendors)
            self._create_orders(options['orders'], products)

        self.stdout.write(self.style.SUCCESS('Database seeding completed successfully!'))

    def _clear_data(self):
        """Clear all existing data."""
        from orders.models import Order
        from payments.models import PaymentAttempt

        PaymentAttempt.objects.all().delete()
        Order.objects.all().delete()
        ProductVariant.objects.all().delete()
        Product.objects.all().delete()
        Vendor.objects.all().delete()
        get_user_model().objects.filter(is_staff=False, username__startswith='seed-').delete()

        self.stdout.write(self.style.WARNING('All existing data cleared.'))

    def _create_vendors(self, count):
        User = get_user_model()
        store_names = [
            'Lagos Gadget Hub', 'Abuja Fabrics', 'Kano Leatherworks', 'Ibadan Books',
            'Enugu Home Goods', 'Port Harcourt Outdoors', 'Jos Crafts', 'Benin Beauty',
        ]

        vendors = []
        for i in range(count):
            user, _ = User.objects.get_or_create(
                username=f'seed-vendor-{i + 1}',
                defaults={'email': f'vendor{i + 1}@example.com'},
            )
            vendor, created = Vendor.objects.get_or_create(
                user=user,
                defaults={'store_name': store_names[i % len(store_names)]},
            )
            vendors.append(vendor)
            if created:
                self.stdout.write(f'  Created vendor: {vendor.store_name}')

        self.stdout.write(self.style.SUCCESS(f'Created {len(vendors)} vendors'))
        return vendors

    def _create_products(self, count, vendors):
        base_names = [
            'Wireless Headphones', 'Ankara Fabric', 'Leather Sandals', 'Power Bank',
            'Cotton T-Shirt', 'Cookbook', 'Throw Pillow', 'Hiking Backpack',
        ]
        sizes = ['S', 'M', 'L', 'XL']

        products = []
        for i in range(count):
            product = Product.objects.create(
                vendor=random.choice(vendors),
                name=f"{random.choice(base_names)} #{i + 1}",
                price=Decimal(random.randrange(1000, 50000, 500)),
                stock_quantity=random.randint(0, 50),
            )
            if random.random() < 0.3:
                ProductVariant.objects.bulk_create([
                    ProductVariant(product=product, name=size, stock_quantity=random.randint(0, 15))
                    for size in sizes
                ])
            products.append(product)

        self.stdout.write(self.style.SUCCESS(f'Created {len(products)} products'))
        return products

    def _create_orders(self, count, products):
        from orders.models import Order, OrderItem

        User = get_user_model()
        for i in range(count):
            buyer, _ = User.objects.get_or_create(
                username=f'seed-buyer-{i + 1}',
                defaults={'email': f'buyer{i + 1}@example.com'},
            )

            chosen = random.sample(products, k=min(len(products), random.randint(1, 3)))
            lines = []
            subtotal = Decimal('0.00')
            for product in chosen:
                variant = product.variants.order_by('?').first()
                quantity = random.randint(1, 3)
                unit_price = variant.price if variant and variant.price else product.price
                lines.append((product, variant, quantity, unit_price))
                subtotal += unit_price * quantity

            shipping_fee = Decimal('1500.00')
            order = Order.objects.create(
                buyer=buyer,
                email=buyer.email,
                shipping_address={'line1': f'{i + 1} Marina Road', 'city': 'Lagos'},
                subtotal=subtotal,
                shipping_fee=shipping_fee,
                total=subtotal + shipping_fee,
            )
            OrderItem.objects.bulk_create([
                OrderItem(
                    order=order,
                    vendor=product.vendor,
                    product=product,
                    variant=variant,
                    product_name=product.name,
                    variant_name=variant.name if variant else '',
                    quantity=quantity,
                    unit_price=unit_price,
                    total_price=unit_price * quantity,
                )
                for product, variant, quantity, unit_price in lines
            ])

        self.stdout.write(self.style.SUCCESS(f'Created {count} pending orders'))
