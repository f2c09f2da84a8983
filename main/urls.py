from django.urls import path
from main.views import auth_views, user_views, audit_views, settings_views


app_name = 'main'


urlpatterns = [
    path('auth/register', auth_views.register, name='register'),
    path('auth/login', auth_views.login, name='login'),
    path('auth/logout', auth_views.logout, name='logout'),
    path('auth/refresh', auth_views.refresh_token, name='refresh-token'),
    path('auth/me', auth_views.me, name='me'),

    path('users', user_views.users, name='user-list'),
    path('users/<int:user_id>', user_views.user_detail, name='user-detail'),

    path('logs', audit_views.list_logs, name='audit-logs'),

    path('settings/clinic', settings_views.clinic_settings, name='clinic-settings'),
]
