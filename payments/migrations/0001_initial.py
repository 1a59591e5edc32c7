import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('orders', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='PaymentAttempt',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('reference', models.CharField(help_text='Gateway reference for this checkout session', max_length=128, unique=True)),
                ('email', models.EmailField(max_length=254)),
                ('amount_minor', models.PositiveBigIntegerField(help_text='Amount requested, in minor currency units')),
                ('authorization_url', models.URLField(max_length=500)),
                ('access_code', models.CharField(blank=True, default='', max_length=100)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='payment_attempts', to='orders.order')),
            ],
            options={
                'verbose_name': 'Payment Attempt',
                'verbose_name_plural': 'Payment Attempts',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['order', 'created_at'], name='attempt_order_created_idx')],
            },
        ),
    ]
