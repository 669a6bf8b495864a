from django.db import models
from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """Extended user model with role selection"""
    ROLE_CHOICES = [
        ('client', 'Client'),
        ('merchant', 'Merchant'),
        ('driver', 'Driver'),
        ('admin', 'Admin'),
    ]

    # Role & basic info
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default='client')
    phone_number = models.CharField(max_length=20, blank=True)

    class Meta:
        db_table = 'users'

    @property
    def display_name(self):
        full_name = self.get_full_name()
        return full_name or self.username

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"
