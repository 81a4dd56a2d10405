import io

from simmachine.stats import Statistics


def test_new_statistics_are_zero():
    stats = Statistics()
    assert stats.total_ticks == 0
    assert stats.idle_ticks == 0
    assert stats.system_ticks == 0
    assert stats.user_ticks == 0
    assert stats.num_packets_sent == 0
    assert stats.num_page_faults == 0


def test_report_format_of_fresh_statistics():
    lines = Statistics().report().splitlines()
    assert lines == [
        "Ticks: total 0, idle 0, system 0, user 0",
        "Disk I/O: reads 0, writes 0",
        "Console I/O: reads 0, writes 0",
        "Paging: faults 0",
        "Network I/O: packets received 0, sent 0",
    ]


def test_report_reflects_counters():
    stats = Statistics(
        total_ticks=1234,
        idle_ticks=5,
        system_ticks=600,
        user_ticks=629,
        num_disk_reads=7,
        num_disk_writes=8,
        num_console_chars_read=9,
        num_console_chars_written=11,
        num_page_faults=12,
        num_packets_sent=13,
        num_packets_recvd=14,
    )
    text = stats.report()
    assert "Ticks: total 1234, idle 5, system 600, user 629\n" in text
    assert "Disk I/O: reads 7, writes 8\n" in text
    assert "Console I/O: reads 9, writes 11\n" in text
    assert "Paging: faults 12\n" in text
    assert "Network I/O: packets received 14, sent 13\n" in text


def test_large_tick_counts_are_not_truncated():
    stats = Statistics(total_ticks=2**40)
    assert str(2**40) in stats.report()


def test_print_writes_report_to_file():
    stats = Statistics(total_ticks=42, user_ticks=42)
    buf = io.StringIO()
    stats.print(buf)
    assert buf.getvalue() == stats.report()


def test_print_defaults_to_stdout(capsys):
    stats = Statistics(num_disk_reads=3)
    stats.print()
    assert capsys.readouterr().out == stats.report()