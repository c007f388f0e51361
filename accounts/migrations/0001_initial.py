# Generated manually

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='CustomUser',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(default=False, help_text='Designates that this user has all permissions without explicitly assigning them.', verbose_name='superuser status')),
                ('email', models.EmailField(max_length=254, unique=True, verbose_name='email address')),
                ('name', models.CharField(blank=True, max_length=150)),
                ('role', models.CharField(choices=[('CLIENT', 'Client'), ('READER', 'Reader'), ('ADMIN', 'Admin')], db_index=True, default='CLIENT', max_length=10)),
                ('balance_cents', models.BigIntegerField(default=0)),
                ('is_staff', models.BooleanField(default=False)),
                ('is_active', models.BooleanField(default=True)),
                ('date_joined', models.DateTimeField(default=django.utils.timezone.now)),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'verbose_name': 'User',
                'verbose_name_plural': 'Users',
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('balance_cents__gte', 0)), name='user_balance_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ReaderProfile',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('display_name', models.CharField(max_length=150)),
                ('bio', models.TextField(blank=True)),
                ('specialties', models.JSONField(blank=True, default=list)),
                ('years_experience', models.PositiveIntegerField(blank=True, null=True)),
                ('profile_image', models.URLField(blank=True, null=True)),
                ('chat_rate_per_min', models.DecimalField(decimal_places=2, default=0, max_digits=8)),
                ('phone_rate_per_min', models.DecimalField(decimal_places=2, default=0, max_digits=8)),
                ('video_rate_per_min', models.DecimalField(decimal_places=2, default=0, max_digits=8)),
                ('is_online', models.BooleanField(default=False)),
                ('is_available', models.BooleanField(default=True)),
                ('rating', models.DecimalField(blank=True, decimal_places=2, max_digits=3, null=True)),
                ('total_reviews', models.PositiveIntegerField(default=0)),
                ('total_sessions', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='reader_profile', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Reader Profile',
                'verbose_name_plural': 'Reader Profiles',
                'ordering': ['-is_online', '-rating'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('chat_rate_per_min__gte', 0), ('phone_rate_per_min__gte', 0), ('video_rate_per_min__gte', 0)), name='reader_rates_non_negative'),
                ],
            },
        ),
    ]
