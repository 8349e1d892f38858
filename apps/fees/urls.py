# fees/urls.py

from django.urls import path
from . import views

app_name = 'fees'

urlpatterns = [
    # =============================================================================
    # INVOICE URLS
    # =============================================================================
    path('invoices/', views.invoice_list, name='invoice_list'),
    path('invoices/generate/', views.generate_invoices, name='generate_invoices'),
    path('invoices/<str:reference_id>/', views.invoice_detail, name='invoice_detail'),
    path('invoices/<str:reference_id>/cancel/', views.invoice_cancel, name='invoice_cancel'),


    # =============================================================================
    # PAYMENT URLS
    # =============================================================================
    path('payments/', views.payment_list, name='payment_list'),
    path('payments/create/', views.payment_create, name='payment_create'),
    path('payments/bulk/', views.payment_bulk, name='payment_bulk'),
    path('payments/statistics/', views.payment_statistics, name='payment_statistics'),


    # =============================================================================
    # DISCOUNT URLS
    # =============================================================================
    path('discounts/create/', views.discount_create, name='discount_create'),
    path('discounts/<uuid:discount_id>/apply/', views.discount_apply, name='discount_apply'),
    path('discounts/<uuid:discount_id>/cancel/', views.discount_cancel, name='discount_cancel'),
]
