# Generated manually

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='ReadingSession',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('session_type', models.CharField(choices=[('CHAT', 'Chat'), ('PHONE', 'Phone'), ('VIDEO', 'Video')], max_length=10)),
                ('status', models.CharField(choices=[('PENDING', 'Pending'), ('ACTIVE', 'Active'), ('COMPLETED', 'Completed'), ('CANCELLED', 'Cancelled')], db_index=True, default='PENDING', max_length=10)),
                ('start_time', models.DateTimeField(blank=True, null=True)),
                ('end_time', models.DateTimeField(blank=True, null=True)),
                ('rate_per_minute_cents', models.PositiveIntegerField()),
                ('total_minutes', models.PositiveIntegerField(default=0)),
                ('total_amount_cents', models.BigIntegerField(default=0)),
                ('reader_earnings_cents', models.BigIntegerField(default=0)),
                ('platform_fee_cents', models.BigIntegerField(default=0)),
                ('is_partial_payment', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('client', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='client_sessions', to=settings.AUTH_USER_MODEL)),
                ('reader', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='reader_sessions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Reading Session',
                'verbose_name_plural': 'Reading Sessions',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['client', 'status'], name='readings_re_client__3f1c2a_idx'),
                    models.Index(fields=['reader', 'status'], name='readings_re_reader__8b7d41_idx'),
                ],
            },
        ),
    ]
