"""Run all unit tests."""
import sys
import io
import importlib
from pathlib import Path

# Fix Windows console encoding
if sys.platform == 'win32':
    # Only wrap if not already wrapped
    if not isinstance(sys.stdout, io.TextIOWrapper) or sys.stdout.encoding != 'utf-8':
        sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')
    if not isinstance(sys.stderr, io.TextIOWrapper) or sys.stderr.encoding != 'utf-8':
        sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8', errors='replace')

# Add test_utilities to path
sys.path.insert(0, str(Path(__file__).parent))

print("=" * 80)
print("Boss Respawn Tracker - Test Suite")
print("=" * 80)
print()

# (name, module, test functions)
tests = [
    ("Message Parser", "test_parser", ["test_message_parser", "test_duration_parser"]),
    ("Time Converter", "test_timestamp", ["test_time_converter"]),
    ("Respawn Registry", "test_database", ["test_respawn_registry", "test_registry_listing",
                                           "test_registry_log_failure", "test_save_skips_replaced_record",
                                           "test_json_boss_log"]),
    ("Spawn Notifier", "test_notifier", ["test_spawn_notifier", "test_notify_exactly_once", "test_sink_failure",
                                         "test_log_failure_during_notify_and_cleanup", "test_report_during_cleanup",
                                         "test_discord_notifiers"]),
    ("Recovery Loader", "test_recovery", ["test_recovery_loader", "test_recovery_replay_missed",
                                          "test_recovery_failures", "test_report_during_reload"]),
    ("Scheduler", "test_scheduler", ["test_single_flight", "test_periodic_loop",
                                     "test_stop_waits_for_running_job", "test_call_with_retry"]),
    ("Commands", "test_commands", ["test_command_handler", "test_forced_jobs_are_single_flight",
                                   "test_context_from_settings", "test_reply_formatting"]),
    ("Discord Channel Log", "test_discord_log", ["test_entry_encoding", "test_discord_channel_log"]),
    ("Settings", "test_settings", ["test_settings", "test_log_level"]),
    ("Backup Restore", "test_restore_backup", ["test_restore_backup"]),
]

passed = 0
failed = 0

for test_name, test_module, test_func_names in tests:
    print(f"\nRunning {test_name} tests...")
    print("-" * 80)
    try:
        module = importlib.import_module(test_module)
        missing = [name for name in test_func_names if not hasattr(module, name)]
        if missing:
            print(f"[FAIL] {test_name} tests FAILED - test functions {missing} not found")
            print(f"Available functions: {[x for x in dir(module) if x.startswith('test_')]}")
            failed += 1
            continue
        for name in test_func_names:
            getattr(module, name)()
        passed += 1
        print(f"[PASS] {test_name} tests PASSED")
    except Exception as e:
        print(f"[FAIL] {test_name} tests FAILED: {e}")
        import traceback
        traceback.print_exc()
        failed += 1

print("\n" + "=" * 80)
print(f"Test Results: {passed} passed, {failed} failed")
print("=" * 80)

if failed > 0:
    sys.exit(1)
