from django.apps import AppConfig


class TestPackagesConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.test_packages'
    label = 'test_packages'
    verbose_name = 'Test Packages'
