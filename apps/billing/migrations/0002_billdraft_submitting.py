from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('billing', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='billdraft',
            name='submitting',
            field=models.BooleanField(default=False, help_text='Set while the bill is being created on the lab backend'),
        ),
    ]
