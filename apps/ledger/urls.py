# ledger/urls.py

from django.urls import path
from . import views

app_name = 'ledger'

urlpatterns = [
    # =============================================================================
    # STUDENT LEDGERS
    # =============================================================================
    path('students/<uuid:student_id>/', views.student_ledger, name='student_ledger'),
    path('students/<uuid:student_id>/balance/', views.student_balance, name='student_balance'),
    path('students/<uuid:student_id>/adjustments/', views.post_adjustment, name='post_adjustment'),
    path('students/<uuid:student_id>/statement.xlsx', views.student_statement_excel, name='student_statement_excel'),


    # =============================================================================
    # ENTRIES & STATISTICS
    # =============================================================================
    path('entries/<uuid:entry_id>/reverse/', views.reverse_entry, name='reverse_entry'),
    path('stats/', views.ledger_statistics, name='statistics'),
]
