from filegate.main import run

run()
