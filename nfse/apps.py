# nfse/apps.py
from django.apps import AppConfig


class NfseConfig(AppConfig):
    """
    App NFS-e Nacional (DPS, eventos de cancelamento, Sefin Nacional).
    """
    default_auto_field = "django.db.models.BigAutoField"
    name = "nfse"
    label = "nfse"
    verbose_name = "NFS-e Nacional"
