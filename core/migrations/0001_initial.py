import django.contrib.auth.models
import django.contrib.auth.validators
import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

import core.models
import core.validators


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(default=False, help_text='Designates that this user has all permissions without explicitly assigning them.', verbose_name='superuser status')),
                ('username', models.CharField(error_messages={'unique': 'A user with that username already exists.'}, help_text='Required. 150 characters or fewer. Letters, digits and @/./+/-/_ only.', max_length=150, unique=True, validators=[django.contrib.auth.validators.UnicodeUsernameValidator()], verbose_name='username')),
                ('first_name', models.CharField(blank=True, max_length=150, verbose_name='first name')),
                ('last_name', models.CharField(blank=True, max_length=150, verbose_name='last name')),
                ('is_staff', models.BooleanField(default=False, help_text='Designates whether the user can log into this admin site.', verbose_name='staff status')),
                ('is_active', models.BooleanField(default=True, help_text='Designates whether this user should be treated as active. Unselect this instead of deleting accounts.', verbose_name='active')),
                ('date_joined', models.DateTimeField(default=django.utils.timezone.now, verbose_name='date joined')),
                ('email', models.EmailField(error_messages={'unique': 'A user with that email already exists.'}, help_text='Required. Used to log in.', max_length=254, unique=True, verbose_name='email address')),
                ('bio', models.TextField(blank=True, default='', validators=[django.core.validators.MaxLengthValidator(500)], verbose_name='bio')),
                ('profile_image', models.ImageField(blank=True, null=True, upload_to=core.models.user_profile_image_upload_path, validators=[core.validators.validate_image_file], verbose_name='profile image')),
                ('latitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True, validators=[core.validators.validate_latitude], verbose_name='latitude')),
                ('longitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True, validators=[core.validators.validate_longitude], verbose_name='longitude')),
                ('loyalty_points', models.IntegerField(default=0, help_text='Points earned from ratings received. May be negative.', verbose_name='loyalty points')),
                ('badge', models.CharField(choices=[('BRONZE', 'Bronze'), ('SILVER', 'Silver'), ('GOLD', 'Gold'), ('DIAMOND', 'Diamond'), ('RUBY', 'Ruby')], default='BRONZE', help_text='Derived from loyalty points.', max_length=10, verbose_name='badge')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'verbose_name': 'user',
                'verbose_name_plural': 'users',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['loyalty_points'], name='core_user_loyalty_8f2c1e_idx'),
                    models.Index(fields=['badge'], name='core_user_badge_4b7d0a_idx'),
                ],
            },
            managers=[
                ('objects', django.contrib.auth.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name='Item',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=100, validators=[django.core.validators.MinLengthValidator(3), core.validators.validate_not_blank], verbose_name='title')),
                ('description', models.TextField(validators=[django.core.validators.MinLengthValidator(10), django.core.validators.MaxLengthValidator(1000), core.validators.validate_not_blank], verbose_name='description')),
                ('category', models.CharField(max_length=50, validators=[django.core.validators.MinLengthValidator(2), core.validators.validate_not_blank], verbose_name='category')),
                ('condition', models.CharField(choices=[('NEW', 'New'), ('GOOD', 'Good'), ('FAIR', 'Fair'), ('POOR', 'Poor')], max_length=10, verbose_name='condition')),
                ('status', models.CharField(choices=[('AVAILABLE', 'Available'), ('RESERVED', 'Reserved'), ('SWAPPED', 'Swapped'), ('UNAVAILABLE', 'Unavailable'), ('TRADED', 'Traded'), ('REMOVED', 'Removed')], default='AVAILABLE', max_length=20, verbose_name='status')),
                ('latitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True, validators=[core.validators.validate_latitude], verbose_name='latitude')),
                ('longitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True, validators=[core.validators.validate_longitude], verbose_name='longitude')),
                ('posted_at', models.DateTimeField(auto_now_add=True, verbose_name='posted at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('owner', models.ForeignKey(help_text='User who listed the item', on_delete=django.db.models.deletion.CASCADE, related_name='items', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'item',
                'verbose_name_plural': 'items',
                'ordering': ['-posted_at'],
                'indexes': [
                    models.Index(fields=['owner'], name='core_item_owner_i_3a9e51_idx'),
                    models.Index(fields=['status'], name='core_item_status_7c0f2b_idx'),
                    models.Index(fields=['category'], name='core_item_categor_d51a8e_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ItemImage',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('image', models.ImageField(upload_to=core.models.item_image_upload_path, validators=[core.validators.validate_image_file], verbose_name='image')),
                ('order', models.PositiveIntegerField(default=0, verbose_name='order')),
                ('uploaded_at', models.DateTimeField(auto_now_add=True, verbose_name='uploaded at')),
                ('item', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='images', to='core.item')),
            ],
            options={
                'verbose_name': 'item image',
                'verbose_name_plural': 'item images',
                'ordering': ['order', 'uploaded_at'],
                'indexes': [
                    models.Index(fields=['item', 'order'], name='core_itemim_item_id_0e6b4f_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='TradeRequest',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('message', models.TextField(blank=True, default='', validators=[django.core.validators.MaxLengthValidator(500)], verbose_name='message')),
                ('status', models.CharField(choices=[('PENDING', 'Pending'), ('ACCEPTED', 'Accepted'), ('REJECTED', 'Rejected')], default='PENDING', max_length=10, verbose_name='status')),
                ('requested_at', models.DateTimeField(auto_now_add=True, verbose_name='requested at')),
                ('responded_at', models.DateTimeField(blank=True, null=True, verbose_name='responded at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('offered_item', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='trade_requests_offered', to='core.item')),
                ('requested_item', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='trade_requests_for', to='core.item')),
                ('requester', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='sent_trade_requests', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'trade request',
                'verbose_name_plural': 'trade requests',
                'ordering': ['-requested_at'],
                'indexes': [
                    models.Index(fields=['requester', 'status'], name='core_trader_request_5f1c2d_idx'),
                    models.Index(fields=['requested_item', 'status'], name='core_trader_request_9b3e7a_idx'),
                    models.Index(fields=['offered_item', 'status'], name='core_trader_offered_2d8c4e_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('requested_item', models.F('offered_item')), _negated=True), name='trade_request_items_differ'),
                    models.UniqueConstraint(condition=models.Q(('status', 'PENDING')), fields=('requester', 'requested_item', 'offered_item'), name='unique_pending_trade_request'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Trade',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('status', models.CharField(choices=[('PENDING', 'Pending'), ('COMPLETED', 'Completed'), ('CANCELLED', 'Cancelled')], default='PENDING', max_length=10, verbose_name='status')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('completed_at', models.DateTimeField(blank=True, null=True, verbose_name='completed at')),
                ('cancelled_at', models.DateTimeField(blank=True, null=True, verbose_name='cancelled at')),
                ('offered_item', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='trades_as_offered', to='core.item')),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='trades_as_owner', to=settings.AUTH_USER_MODEL)),
                ('requested_item', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='trades_as_requested', to='core.item')),
                ('requester', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='trades_as_requester', to=settings.AUTH_USER_MODEL)),
                ('trade_request', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='trade', to='core.traderequest')),
            ],
            options={
                'verbose_name': 'trade',
                'verbose_name_plural': 'trades',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['owner', 'status'], name='core_trade_owner_i_6a2f9c_idx'),
                    models.Index(fields=['requester', 'status'], name='core_trade_request_1e7b3d_idx'),
                    models.Index(fields=['completed_at'], name='core_trade_complet_8d4a0f_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SwappedItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('item', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='swaps', to='core.item')),
                ('trade', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='swapped_items', to='core.trade')),
                ('user', models.ForeignKey(help_text='User who received the item', on_delete=django.db.models.deletion.CASCADE, related_name='acquired_items', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'swapped item',
                'verbose_name_plural': 'swapped items',
                'ordering': ['-created_at'],
                'constraints': [
                    models.UniqueConstraint(fields=('trade', 'item'), name='unique_swapped_item_per_trade'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Rating',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('score', models.PositiveSmallIntegerField(validators=[django.core.validators.MinValueValidator(1, message='Rating must be at least 1 star.'), django.core.validators.MaxValueValidator(5, message='Rating cannot exceed 5 stars.')], verbose_name='score')),
                ('comment', models.TextField(blank=True, default='', validators=[django.core.validators.MaxLengthValidator(500)], verbose_name='comment')),
                ('points_awarded', models.IntegerField(default=0, editable=False, verbose_name='points awarded')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('reviewee', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ratings_received', to=settings.AUTH_USER_MODEL)),
                ('reviewer', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ratings_given', to=settings.AUTH_USER_MODEL)),
                ('trade', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='ratings', to='core.trade')),
            ],
            options={
                'verbose_name': 'rating',
                'verbose_name_plural': 'ratings',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['reviewee'], name='core_rating_reviewe_3c5e8b_idx'),
                    models.Index(fields=['reviewer'], name='core_rating_reviewe_7f1a2d_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('reviewer', 'reviewee', 'trade'), name='unique_rating_per_trade_pair'),
                    models.CheckConstraint(condition=models.Q(('reviewer', models.F('reviewee')), _negated=True), name='rating_reviewer_not_reviewee'),
                ],
            },
        ),
    ]
