import django.db.models.deletion
import django.utils.timezone
import uuid
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('orders', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Assignment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('attempt', models.PositiveSmallIntegerField(default=1)),
                ('radius_km', models.FloatField()),
                ('candidate_driver_ids', models.JSONField(default=list)),
                ('notified_driver_ids', models.JSONField(default=list)),
                ('total_amount', models.DecimalField(decimal_places=2, max_digits=10)),
                ('delivery_fee', models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ('status', models.CharField(choices=[('notifying', 'Notifying Drivers'), ('pending', 'Pending Claim'), ('claimed', 'Claimed'), ('expired', 'Expired'), ('exhausted', 'Exhausted'), ('failed', 'Failed'), ('cancelled', 'Cancelled')], default='notifying', max_length=20)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('expires_at', models.DateTimeField()),
                ('notified_at', models.DateTimeField(blank=True, null=True)),
                ('resolved_at', models.DateTimeField(blank=True, null=True)),
                ('failure_reason', models.CharField(blank=True, max_length=255)),
                ('claimed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='claimed_assignments', to=settings.AUTH_USER_MODEL)),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='assignments', to='orders.order')),
                ('store', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='assignments', to='orders.store')),
            ],
            options={
                'db_table': 'assignments',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['status', 'expires_at'], name='assignment_sweep_idx')],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status', 'claimed')), fields=('order',), name='one_claimed_assignment_per_order'),
                    models.UniqueConstraint(condition=models.Q(('status__in', ['notifying', 'pending'])), fields=('order',), name='one_live_assignment_per_order'),
                ],
            },
        ),
        migrations.CreateModel(
            name='NotificationAttempt',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('rank', models.PositiveSmallIntegerField()),
                ('distance_km', models.FloatField()),
                ('success', models.BooleanField(default=False)),
                ('error', models.CharField(blank=True, max_length=255)),
                ('sent_at', models.DateTimeField(blank=True, null=True)),
                ('response', models.CharField(choices=[('none', 'No Response'), ('claimed', 'Claimed'), ('rejected', 'Rejected')], default='none', max_length=10)),
                ('responded_at', models.DateTimeField(blank=True, null=True)),
                ('assignment', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='attempts', to='dispatch.assignment')),
                ('driver', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='dispatch_notifications', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'notification_attempts',
                'ordering': ['rank'],
                'constraints': [models.UniqueConstraint(fields=('assignment', 'driver'), name='unique_assignment_driver')],
            },
        ),
    ]
