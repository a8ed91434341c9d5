from click.testing import CliRunner
from zkvault.cli.commands import cli

def test_cli_help():
	r = CliRunner().invoke(cli, ['--help'])
	assert r.exit_code == 0
	for cmd in ('init', 'add', 'copy', 'generate', 'export', 'import', 'sync', 'clipboard'):
		assert cmd in r.output


def test_commands_need_a_vault(monkeypatch, tmp_path):
	monkeypatch.setenv('ZKVAULT_HOME', str(tmp_path / 'empty'))
	r = CliRunner().invoke(cli, ['list'], input='pw\n')
	assert r.exit_code != 0
	assert 'not initialised' in r.output


def test_two_sessions_see_the_same_vault(monkeypatch, tmp_path):
	monkeypatch.setenv('ZKVAULT_HOME', str(tmp_path / 'home'))
	monkeypatch.delenv('ZKVAULT_REMOTE_URL', raising=False)
	runner = CliRunner()
	assert runner.invoke(cli, ['init'], input='pw\npw\n').exit_code == 0
	runner.invoke(cli, ['add', '--title', 'First', '--password', 'a'], input='pw\n')
	runner.invoke(cli, ['add', '--title', 'Second', '--password', 'b'], input='pw\n')
	info = runner.invoke(cli, ['info'], input='pw\n')
	assert 'Items: 2' in info.output
