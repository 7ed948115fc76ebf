"""Supabase-backed services."""
