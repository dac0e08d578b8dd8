from .supabase import SupabaseStore
